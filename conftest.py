import pytest

from book_inventory.config import Settings
from book_inventory.inventory import InventoryStore


@pytest.fixture
def settings(tmp_path, monkeypatch):
    # Each test gets its own database file and no API key
    db_file = str(tmp_path / "inventory.db")
    monkeypatch.setenv("INVENTORY_DB_FILE", db_file)
    monkeypatch.delenv("API_KEY", raising=False)
    return Settings()


@pytest.fixture
def store(settings):
    store = InventoryStore(settings=settings)
    yield store
    store.close()


@pytest.fixture
def book_fields():
    return {
        "title": "A Brief History of Time",
        "author": "Stephen Hawking",
        "isbn": "9780553380163",
        "category": "Science",
        "publicationYear": 1988,
        "availableCopies": 3,
    }
