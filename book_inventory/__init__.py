"""Book Inventory - core application package

This package contains:
- Record model and candidate/filter types (book.py)
- Field validation (validators.py)
- Inventory store with the atomic borrow decrement (inventory.py)
- SQLite persistence layer (database.py)
- Error taxonomy (errors.py)
- HTTP API (api.py) and CLI (cli.py)
"""

from book_inventory.book import BookCandidate, BookFilter, BookRecord, Category
from book_inventory.inventory import InventoryStore

__all__ = ["BookCandidate", "BookFilter", "BookRecord", "Category", "InventoryStore"]
