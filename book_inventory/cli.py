import logging
import os
import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console

from book_inventory.book import BookCandidate, BookFilter, is_valid_book_id
from book_inventory.config import Settings
from book_inventory.errors import InventoryError, StorageUnavailable
from book_inventory.inventory import InventoryStore
from book_inventory.ui_helpers import print_book_result, print_list_result, print_stats_result, set_output_mode

APP_NAME = "Book Inventory CLI"

console = Console(stderr=True)
logger = logging.getLogger(__name__)


class CliState:
    """Per-invocation state; the store is opened on first use."""

    def __init__(self, settings: Settings, db_file: Optional[str] = None) -> None:
        self.settings = settings
        self.db_file = db_file
        self._store: Optional[InventoryStore] = None

    @property
    def store(self) -> InventoryStore:
        if self._store is None:
            self._store = InventoryStore(self.db_file, settings=self.settings)
        return self._store

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None


def _fail(message: str) -> None:
    print(f"Error: {message}")
    raise typer.Exit(code=1)


def _report(exc: InventoryError) -> None:
    if isinstance(exc, StorageUnavailable):
        _fail(f"{exc} (try again)")
    _fail(str(exc))


def _checked_id(book_id: str) -> str:
    if not is_valid_book_id(book_id):
        _fail("Invalid book ID")
    return book_id


# --- Typer CLI application ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: INVENTORY_DB_FILE)"),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
):
    """Global options for the CLI (database file, output mode)."""
    settings = Settings()
    logging.basicConfig(level=settings.log_level)
    if output:
        set_output_mode(output)
    state = CliState(settings, db)
    ctx.obj = state
    ctx.call_on_close(state.close)


@app.command("add")
def cli_add(
    ctx: typer.Context,
    title: str = typer.Option(..., "--title", "-t"),
    author: str = typer.Option(..., "--author", "-a"),
    isbn: str = typer.Option(..., "--isbn", "-i"),
    category: str = typer.Option(..., "--category", "-c", help="Fiction, Non-Fiction, Science, ..."),
    year: int = typer.Option(..., "--year", "-y", help="Publication year"),
    copies: Optional[int] = typer.Option(None, "--copies", help="Available copies (default 1)"),
):
    """Add a book to the catalog."""
    candidate = BookCandidate(
        title=title,
        author=author,
        isbn=isbn,
        category=category,
        publication_year=year,
        available_copies=copies,
    )
    try:
        book = ctx.obj.store.create_book(candidate)
    except InventoryError as e:
        _report(e)
    print(f"Successfully added: {book.title} by {book.author} (id {book.id})")


@app.command("list")
def cli_list(
    ctx: typer.Context,
    title: Optional[str] = typer.Option(None, "--title", help="Title contains (case-insensitive)"),
    author: Optional[str] = typer.Option(None, "--author", help="Author contains (case-insensitive)"),
    category: Optional[str] = typer.Option(None, "--category"),
    min_year: Optional[int] = typer.Option(None, "--min-year"),
    max_year: Optional[int] = typer.Option(None, "--max-year"),
):
    """List books, optionally filtered."""
    book_filter = BookFilter(
        title_contains=title,
        author_contains=author,
        category=category,
        min_year=min_year,
        max_year=max_year,
    )
    try:
        books = ctx.obj.store.list_books(book_filter)
    except InventoryError as e:
        _report(e)
    print_list_result(books)


@app.command("show")
def cli_show(ctx: typer.Context, book_id: str):
    """Show one book by id."""
    book_id = _checked_id(book_id)
    try:
        book = ctx.obj.store.get_book(book_id)
    except InventoryError as e:
        _report(e)
    print_book_result(book)


@app.command("update")
def cli_update(
    ctx: typer.Context,
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    isbn: Optional[str] = typer.Option(None, "--isbn", "-i"),
    category: Optional[str] = typer.Option(None, "--category", "-c"),
    year: Optional[int] = typer.Option(None, "--year", "-y"),
    copies: Optional[int] = typer.Option(None, "--copies"),
):
    """Update some or all fields of a book."""
    book_id = _checked_id(book_id)
    patch = BookCandidate(
        title=title,
        author=author,
        isbn=isbn,
        category=category,
        publication_year=year,
        available_copies=copies,
    )
    if not patch.supplied():
        _fail("Nothing to update. Provide at least one field.")
    try:
        book = ctx.obj.store.update_book(book_id, patch)
    except InventoryError as e:
        _report(e)
    print(f"Updated: {book.title} by {book.author}")


@app.command("remove")
def cli_remove(ctx: typer.Context, book_id: str):
    """Remove a book by id."""
    book_id = _checked_id(book_id)
    try:
        ctx.obj.store.delete_book(book_id)
    except InventoryError as e:
        _report(e)
    print(f"Book {book_id} has been removed.")


@app.command("borrow")
def cli_borrow(ctx: typer.Context, book_id: str):
    """Borrow one copy of a book."""
    book_id = _checked_id(book_id)
    try:
        book = ctx.obj.store.decrement_availability(book_id)
    except InventoryError as e:
        _report(e)
    print(f"Borrowed: {book.title}. Copies left: {book.available_copies}")


@app.command("stats")
def cli_stats(ctx: typer.Context):
    """Show catalog statistics."""
    try:
        stats = ctx.obj.store.get_statistics()
    except InventoryError as e:
        _report(e)
    print_stats_result(stats)


@app.command("serve")
def cli_serve(ctx: typer.Context):
    """Start the HTTP API with uvicorn."""
    state: CliState = ctx.obj
    host = state.settings.api_host
    port = int(state.settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    env = dict(os.environ)
    if state.db_file:
        env["INVENTORY_DB_FILE"] = state.db_file
    args = [
        sys.executable,
        "-m", "uvicorn",
        "book_inventory.api:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        subprocess.run(args, env=env, check=False)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not launch uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        print("Server stopped.")


if __name__ == "__main__":
    app()
