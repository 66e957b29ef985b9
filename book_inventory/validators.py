from datetime import date
from typing import Any, Optional

from book_inventory.book import BookCandidate, BookRecord, Category
from book_inventory.errors import FieldRequired, InvalidCategory, InvalidCopies, InvalidYear

MIN_PUBLICATION_YEAR = 1000
DEFAULT_AVAILABLE_COPIES = 1
# Largest value an SQLite INTEGER column can hold
MAX_AVAILABLE_COPIES = 2**63 - 1

TEXT_FIELDS = ("title", "author", "isbn")


class BookValidator:
    """Field constraints for book records.

    Pure: nothing is read besides the arguments and, when no year is given,
    today's date for the publication-year upper bound.
    """

    @staticmethod
    def validate(
        candidate: BookCandidate,
        existing: Optional[BookRecord] = None,
        *,
        current_year: Optional[int] = None,
    ) -> BookCandidate:
        """Return a normalized, fully populated candidate or raise a ValidationError.

        Without `existing` the candidate is a create: title, author, isbn,
        category and publication year must all be supplied and available
        copies default to 1. With `existing` the candidate is a patch merged
        over the record and the merged result is checked as a whole.
        """
        if current_year is None:
            current_year = date.today().year

        if existing is not None:
            merged = BookCandidate(
                title=existing.title,
                author=existing.author,
                isbn=existing.isbn,
                category=existing.category,
                publication_year=existing.publication_year,
                available_copies=existing.available_copies,
            )
            for name, value in candidate.supplied().items():
                setattr(merged, name, value)
        else:
            merged = BookCandidate(**candidate.supplied())
            if merged.available_copies is None:
                merged.available_copies = DEFAULT_AVAILABLE_COPIES

        normalized = BookCandidate()
        for name in TEXT_FIELDS:
            setattr(normalized, name, BookValidator.normalize_text(name, getattr(merged, name)))
        normalized.category = BookValidator.validate_category(merged.category)
        normalized.publication_year = BookValidator.validate_year(merged.publication_year, current_year)
        normalized.available_copies = BookValidator.validate_copies(merged.available_copies)
        return normalized

    @staticmethod
    def normalize_text(field: str, value: Any) -> str:
        if value is None or not isinstance(value, str):
            raise FieldRequired(field)
        stripped = value.strip()
        if not stripped:
            raise FieldRequired(field)
        return stripped

    @staticmethod
    def validate_category(value: Any) -> Category:
        if value is None:
            raise FieldRequired("category")
        if isinstance(value, Category):
            return value
        try:
            return Category(value)
        except (ValueError, TypeError):
            raise InvalidCategory(value) from None

    @staticmethod
    def validate_year(value: Any, current_year: int) -> int:
        if value is None:
            raise FieldRequired("publicationYear")
        year = _as_int(value)
        if year is None:
            raise InvalidYear(value, "Publication year must be an integer")
        if year < MIN_PUBLICATION_YEAR:
            raise InvalidYear(value, "Publication year must be valid")
        if year > current_year:
            raise InvalidYear(value, "Publication year cannot be in the future")
        return year

    @staticmethod
    def validate_copies(value: Any) -> int:
        copies = _as_int(value)
        if copies is None:
            raise InvalidCopies(value, "Available copies must be an integer")
        if copies < 0:
            raise InvalidCopies(value, "Available copies cannot be negative")
        if copies > MAX_AVAILABLE_COPIES:
            raise InvalidCopies(value, "Available copies is too large")
        return copies


def _as_int(value: Any) -> Optional[int]:
    # bool is an int subclass but never a meaningful year or count
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


validate = BookValidator.validate
