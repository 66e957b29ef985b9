"""
Error taxonomy.

Every expected outcome of a catalog operation has its own exception type so
the HTTP and CLI shells can render a specific message per kind. All of them
are recoverable: the store state is unchanged when one is raised.
"""

from typing import Any, Dict


class InventoryError(Exception):
    """Base class for all inventory errors."""

    kind = "inventory_error"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": str(self)}


# ------------------------- Validation ------------------------- #
class ValidationError(InventoryError):
    """A candidate field value breaks a record constraint."""

    kind = "validation_error"

    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.value = value

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        data["value"] = self.value
        return data


class FieldRequired(ValidationError):
    kind = "field_required"

    def __init__(self, field: str) -> None:
        super().__init__(field, None, f"{field} is required")


class InvalidCategory(ValidationError):
    kind = "invalid_category"

    def __init__(self, value: Any) -> None:
        super().__init__("category", value, f"{value!r} is not a valid category")


class InvalidYear(ValidationError):
    kind = "invalid_year"

    def __init__(self, value: Any, message: str = "Publication year must be valid") -> None:
        super().__init__("publicationYear", value, message)


class InvalidCopies(ValidationError):
    kind = "invalid_copies"

    def __init__(self, value: Any, message: str = "Available copies cannot be negative") -> None:
        super().__init__("availableCopies", value, message)


# ------------------------- Store ------------------------- #
class DuplicateField(InventoryError):
    """Raised when a unique field collides with another live record."""

    kind = "duplicate_field"

    def __init__(self, field: str, value: Any = None) -> None:
        super().__init__(f"A book with this {field} already exists")
        self.field = field
        self.value = value

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class NotFound(InventoryError):
    kind = "not_found"

    def __init__(self, book_id: str) -> None:
        super().__init__(f"Book {book_id} not found")
        self.book_id = book_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["id"] = self.book_id
        return data


class NoCopiesAvailable(InventoryError):
    """Raised by the atomic decrement when the record has no copies left."""

    kind = "no_copies_available"

    def __init__(self, book_id: str, current_copies: int = 0) -> None:
        super().__init__("No copies available to borrow")
        self.book_id = book_id
        self.current_copies = current_copies

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["id"] = self.book_id
        data["currentCopies"] = self.current_copies
        return data


class StorageUnavailable(InventoryError):
    """The persistence layer failed or a lock could not be taken in time.

    Callers may retry; the store itself never does.
    """

    kind = "storage_unavailable"
    retryable = True
