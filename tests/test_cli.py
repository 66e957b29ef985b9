import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from book_inventory.cli import app
from book_inventory.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()

ADD_ARGS = [
    "add",
    "--title", "Dune",
    "--author", "Frank Herbert",
    "--isbn", "9780441013593",
    "--category", "Fiction",
    "--year", "1965",
]


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    # set_output_mode writes os.environ; monkeypatch restores it after each test
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")


@pytest.fixture
def db(settings):
    return settings.database_file


def invoke(db, *args):
    return runner.invoke(app, ["--db", db, *args])


def test_list_no_books(db):
    result = invoke(db, "list")
    assert result.exit_code == 0
    assert "No books in inventory." in result.stdout


def test_add_and_list(db, store):
    result = invoke(db, *ADD_ARGS, "--copies", "2")
    assert result.exit_code == 0
    assert "Successfully added: Dune by Frank Herbert" in result.stdout

    [book] = store.list_books()
    assert book.available_copies == 2

    result = invoke(db, "list", "--category", "Fiction", "--min-year", "1960")
    assert result.exit_code == 0
    assert f"{book.id}  9780441013593 - Dune by Frank Herbert [Fiction, 1965] copies: 2" in result.stdout


def test_add_invalid_category(db, store):
    args = list(ADD_ARGS)
    args[args.index("Fiction")] = "Poetry"
    result = invoke(db, *args)
    assert result.exit_code == 1
    assert "Error: 'Poetry' is not a valid category" in result.stdout
    assert store.count() == 0


def test_add_duplicate_isbn(db):
    assert invoke(db, *ADD_ARGS).exit_code == 0
    result = invoke(db, *ADD_ARGS)
    assert result.exit_code == 1
    assert "Error: A book with this isbn already exists" in result.stdout


def test_show(db, store, book_fields):
    book = store.create_book(book_fields)
    result = invoke(db, "show", book.id)
    assert result.exit_code == 0
    assert "Title: A Brief History of Time" in result.stdout
    assert "Available Copies: 3" in result.stdout


def test_show_invalid_id(db):
    result = invoke(db, "show", "nope")
    assert result.exit_code == 1
    assert "Error: Invalid book ID" in result.stdout


def test_show_json(db, store, book_fields):
    book = store.create_book(book_fields)
    result = invoke(db, "-o", "json", "show", book.id)
    assert result.exit_code == 0
    assert json.loads(result.stdout) == book.to_dict()


def test_update(db, store, book_fields):
    book = store.create_book(book_fields)
    result = invoke(db, "update", book.id, "--title", "Brief History")
    assert result.exit_code == 0
    assert "Updated: Brief History by Stephen Hawking" in result.stdout
    assert store.get_book(book.id).title == "Brief History"


def test_update_nothing(db, store, book_fields):
    book = store.create_book(book_fields)
    result = invoke(db, "update", book.id)
    assert result.exit_code == 1
    assert "Nothing to update" in result.stdout


def test_remove(db, store, book_fields):
    book = store.create_book(book_fields)
    result = invoke(db, "remove", book.id)
    assert result.exit_code == 0
    assert f"Book {book.id} has been removed." in result.stdout

    result = invoke(db, "remove", book.id)
    assert result.exit_code == 1
    assert f"Error: Book {book.id} not found" in result.stdout


def test_borrow(db, store, book_fields):
    book = store.create_book({**book_fields, "availableCopies": 1})
    result = invoke(db, "borrow", book.id)
    assert result.exit_code == 0
    assert "Copies left: 0" in result.stdout

    result = invoke(db, "borrow", book.id)
    assert result.exit_code == 1
    assert "Error: No copies available to borrow" in result.stdout


def test_stats(db, store, book_fields):
    store.create_book(book_fields)
    result = invoke(db, "stats")
    assert result.exit_code == 0
    assert "Total Books: 1" in result.stdout
    assert "Available Copies: 3" in result.stdout
    assert "Science: 1" in result.stdout


@patch("book_inventory.cli.subprocess.run")
def test_serve_command(mock_run, db):
    result = invoke(db, "serve")
    assert result.exit_code == 0
    assert "Starting API on" in result.stdout
    mock_run.assert_called_once()
    args = mock_run.call_args[0][0]
    assert "uvicorn" in args
    assert "book_inventory.api:app" in args
    assert "--host" in args
    assert "--port" in args
    assert mock_run.call_args.kwargs["env"]["INVENTORY_DB_FILE"] == db
