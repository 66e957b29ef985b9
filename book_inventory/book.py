from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional


class Category(str, Enum):
    """Fixed set of catalog categories. Values are the display strings."""

    FICTION = "Fiction"
    NON_FICTION = "Non-Fiction"
    SCIENCE = "Science"
    TECHNOLOGY = "Technology"
    HISTORY = "History"
    BIOGRAPHY = "Biography"
    OTHER = "Other"

    @classmethod
    def values(cls) -> list[str]:
        return [c.value for c in cls]


_BOOK_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def new_book_id() -> str:
    return uuid.uuid4().hex


def is_valid_book_id(value: Any) -> bool:
    """True when `value` has the shape of an id the store could have assigned."""
    return isinstance(value, str) and bool(_BOOK_ID_RE.match(value))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# Wire (camelCase) name -> attribute name
WIRE_TO_ATTR = {
    "title": "title",
    "author": "author",
    "isbn": "isbn",
    "category": "category",
    "publicationYear": "publication_year",
    "availableCopies": "available_copies",
}
ATTR_TO_WIRE = {v: k for k, v in WIRE_TO_ATTR.items()}


@dataclass
class BookCandidate:
    """Unvalidated field values proposed for a create or an update.

    None means "not supplied". On update only supplied fields are applied.
    """

    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    category: Any = None
    publication_year: Any = None
    available_copies: Any = None

    @staticmethod
    def from_mapping(data: Mapping[str, Any]) -> "BookCandidate":
        """Build a candidate from a request body or keyword arguments.

        Accepts camelCase wire keys and snake_case attribute keys. Unknown keys,
        and the store-owned id/createdAt/updatedAt, are ignored.
        """
        values: dict[str, Any] = {}
        for key, value in data.items():
            attr = WIRE_TO_ATTR.get(key, key)
            if attr in ATTR_TO_WIRE:
                values[attr] = value
        return BookCandidate(**values)

    def supplied(self) -> dict[str, Any]:
        """Attribute name -> value for every field that was supplied."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass(frozen=True)
class BookRecord:
    """A single catalog entry as persisted by the store."""

    id: str
    title: str
    author: str
    isbn: str
    category: Category
    publication_year: int
    available_copies: int
    created_at: str
    updated_at: str

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "category": self.category.value,
            "publicationYear": self.publication_year,
            "availableCopies": self.available_copies,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "BookRecord":
        return BookRecord(
            id=row["id"],
            title=row["title"],
            author=row["author"],
            isbn=row["isbn"],
            category=Category(row["category"]),
            publication_year=int(row["publication_year"]),
            available_copies=int(row["available_copies"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass(frozen=True)
class BookFilter:
    """Optional predicates for listing; omitted ones impose no constraint."""

    title_contains: Optional[str] = None
    author_contains: Optional[str] = None
    category: Optional[str] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None

    @staticmethod
    def from_mapping(data: Mapping[str, Any]) -> "BookFilter":
        return BookFilter(
            title_contains=data.get("titleContains", data.get("title_contains")),
            author_contains=data.get("authorContains", data.get("author_contains")),
            category=data.get("category"),
            min_year=data.get("minYear", data.get("min_year")),
            max_year=data.get("maxYear", data.get("max_year")),
        )
