import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from book_inventory.book import BookCandidate, BookFilter, BookRecord, Category, new_book_id, utc_now_iso
from book_inventory.config import Settings
from book_inventory.database import Database
from book_inventory.errors import DuplicateField, NoCopiesAvailable, NotFound, StorageUnavailable
from book_inventory.validators import MIN_PUBLICATION_YEAR, BookValidator

logger = logging.getLogger(__name__)

_COLUMNS = """
    id, title, author, isbn, category, publication_year, available_copies,
    created_at, updated_at
"""

Fields = Union[BookCandidate, Mapping[str, Any]]


class InventoryStore:
    """Owns the book collection: lifecycle, ISBN uniqueness and the atomic decrement.

    Writes to one record are serialized by that record's lock, so operations on
    different ids never wait on each other's locks. SQLite still allows one
    write transaction at a time for the whole file, so they do queue briefly
    inside the database. Anything that may introduce an ISBN additionally
    holds the collection-wide ISBN lock, always taken after the record lock.
    Reads take no locks.
    """

    def __init__(
        self,
        db_file: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        lock_timeout: Optional[float] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.database = Database(
            db_file or self.settings.database_file,
            timeout=self.settings.database_timeout,
        )
        self.lock_timeout = self.settings.lock_timeout if lock_timeout is None else lock_timeout
        self._isbn_lock = threading.Lock()
        self._record_locks: Dict[str, _RecordLock] = {}
        self._registry_lock = threading.Lock()

        self.database.initialize()

    # ------------------------- Locking ------------------------- #
    @contextmanager
    def _locked_record(self, book_id: str) -> Iterator[None]:
        """Hold the lock for one record id.

        An entry lives in the registry only while some thread holds or waits
        for it, so ids that were never created or were deleted leave nothing
        behind.
        """
        with self._registry_lock:
            entry = self._record_locks.get(book_id)
            if entry is None:
                entry = self._record_locks[book_id] = _RecordLock()
            entry.users += 1
        try:
            with self._holding(entry.lock, f"book {book_id}"):
                yield
        finally:
            with self._registry_lock:
                entry.users -= 1
                if entry.users == 0 and self._record_locks.get(book_id) is entry:
                    del self._record_locks[book_id]

    @contextmanager
    def _holding(self, lock: threading.Lock, what: str) -> Iterator[None]:
        if not lock.acquire(timeout=self.lock_timeout):
            logger.error("Timed out after %.1fs waiting for %s", self.lock_timeout, what)
            raise StorageUnavailable(f"Timed out waiting for {what}")
        try:
            yield
        finally:
            lock.release()

    # ------------------------- Core operations ------------------------- #
    def create_book(self, fields: Fields) -> BookRecord:
        """Validate and insert a new record; the ISBN must not be in use."""
        candidate = _as_candidate(fields)
        valid = BookValidator.validate(candidate)
        now = utc_now_iso()
        record = BookRecord(
            id=new_book_id(),
            title=valid.title,
            author=valid.author,
            isbn=valid.isbn,
            category=valid.category,
            publication_year=valid.publication_year,
            available_copies=valid.available_copies,
            created_at=now,
            updated_at=now,
        )

        with self._holding(self._isbn_lock, "ISBN index"):
            try:
                with self.database.transaction() as conn:
                    if self._isbn_taken(conn, record.isbn):
                        logger.warning("Rejected create: ISBN %s already exists", record.isbn)
                        raise DuplicateField("isbn", record.isbn)
                    conn.execute(
                        f"INSERT INTO books ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            record.id, record.title, record.author, record.isbn,
                            record.category.value, record.publication_year,
                            record.available_copies, record.created_at, record.updated_at,
                        ),
                    )
            except sqlite3.IntegrityError as exc:
                # Another process wrote the same ISBN; the unique index caught it
                raise DuplicateField("isbn", record.isbn) from exc

        logger.info("Created book %s (ISBN %s)", record.id, record.isbn)
        return record

    def get_book(self, book_id: str) -> BookRecord:
        with self.database.reading() as conn:
            record = self._fetch(conn, book_id)
        if record is None:
            raise NotFound(book_id)
        return record

    def list_books(self, book_filter: Union[BookFilter, Mapping[str, Any], None] = None) -> List[BookRecord]:
        """Records matching every supplied predicate, in creation order."""
        if book_filter is None:
            book_filter = BookFilter()
        elif not isinstance(book_filter, BookFilter):
            book_filter = BookFilter.from_mapping(book_filter)

        clauses: List[str] = []
        params: List[Any] = []
        if book_filter.title_contains:
            clauses.append("contains_ci(title, ?)")
            params.append(book_filter.title_contains)
        if book_filter.author_contains:
            clauses.append("contains_ci(author, ?)")
            params.append(book_filter.author_contains)
        if book_filter.category is not None:
            category = book_filter.category
            clauses.append("category = ?")
            params.append(category.value if isinstance(category, Category) else str(category))
        # Stored years lie in [MIN_PUBLICATION_YEAR, current year]; clamp so any
        # integer bound fits an SQLite parameter
        current_year = date.today().year
        if book_filter.min_year is not None:
            min_year = int(book_filter.min_year)
            if min_year > current_year:
                return []
            clauses.append("publication_year >= ?")
            params.append(max(min_year, MIN_PUBLICATION_YEAR))
        if book_filter.max_year is not None:
            max_year = int(book_filter.max_year)
            if max_year < MIN_PUBLICATION_YEAR:
                return []
            clauses.append("publication_year <= ?")
            params.append(min(max_year, current_year))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self.database.reading() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM books {where} ORDER BY rowid", params
            ).fetchall()
        return [BookRecord.from_row(row) for row in rows]

    def update_book(self, book_id: str, patch: Fields) -> BookRecord:
        """Apply a full or partial patch; the merged record is revalidated."""
        candidate = _as_candidate(patch)
        with self._locked_record(book_id):
            if candidate.isbn is not None:
                with self._holding(self._isbn_lock, "ISBN index"):
                    return self._apply_update(book_id, candidate)
            return self._apply_update(book_id, candidate)

    def _apply_update(self, book_id: str, candidate: BookCandidate) -> BookRecord:
        # Caller holds the record lock, plus the ISBN lock when the patch has an ISBN
        try:
            with self.database.transaction() as conn:
                existing = self._fetch(conn, book_id)
                if existing is None:
                    raise NotFound(book_id)
                valid = BookValidator.validate(candidate, existing)
                if valid.isbn != existing.isbn and self._isbn_taken(conn, valid.isbn, exclude_id=book_id):
                    logger.warning("Rejected update of %s: ISBN %s already exists", book_id, valid.isbn)
                    raise DuplicateField("isbn", valid.isbn)
                conn.execute(
                    """
                    UPDATE books
                    SET title = ?, author = ?, isbn = ?, category = ?,
                        publication_year = ?, available_copies = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        valid.title, valid.author, valid.isbn, valid.category.value,
                        valid.publication_year, valid.available_copies, utc_now_iso(), book_id,
                    ),
                )
                updated = self._fetch(conn, book_id)
        except sqlite3.IntegrityError as exc:
            raise DuplicateField("isbn", candidate.isbn) from exc

        logger.info("Updated book %s", book_id)
        return updated

    def delete_book(self, book_id: str) -> None:
        """Remove the record for good; its ISBN becomes free for reuse."""
        with self._locked_record(book_id):
            with self.database.transaction() as conn:
                cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
                if cursor.rowcount == 0:
                    raise NotFound(book_id)
        logger.info("Deleted book %s", book_id)

    def decrement_availability(self, book_id: str) -> BookRecord:
        """Take one copy off the shelf, or fail without touching the record.

        The check and the subtraction happen under the record lock and inside
        one write transaction, so two borrowers can never both take the last
        copy.
        """
        with self._locked_record(book_id):
            with self.database.transaction() as conn:
                existing = self._fetch(conn, book_id)
                if existing is None:
                    raise NotFound(book_id)
                if existing.available_copies <= 0:
                    logger.info("Borrow refused for %s: no copies available", book_id)
                    raise NoCopiesAvailable(book_id, existing.available_copies)
                cursor = conn.execute(
                    """
                    UPDATE books
                    SET available_copies = available_copies - 1, updated_at = ?
                    WHERE id = ? AND available_copies > 0
                    """,
                    (utc_now_iso(), book_id),
                )
                if cursor.rowcount != 1:
                    raise NoCopiesAvailable(book_id, existing.available_copies)
                updated = self._fetch(conn, book_id)

        logger.info("Borrowed a copy of %s, %d left", book_id, updated.available_copies)
        return updated

    # ------------------------- Statistics ------------------------- #
    def count(self) -> int:
        with self.database.reading() as conn:
            return conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]

    def get_statistics(self) -> Dict[str, Any]:
        with self.database.reading() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total_books,
                       COUNT(DISTINCT author) AS unique_authors,
                       COALESCE(SUM(available_copies), 0) AS total_available_copies,
                       COALESCE(SUM(CASE WHEN available_copies = 0 THEN 1 ELSE 0 END), 0) AS out_of_stock
                FROM books
                """
            ).fetchone()
            by_category = {
                r["category"]: r["n"]
                for r in conn.execute("SELECT category, COUNT(*) AS n FROM books GROUP BY category")
            }
        return {
            "total_books": row["total_books"],
            "unique_authors": row["unique_authors"],
            "total_available_copies": row["total_available_copies"],
            "out_of_stock": row["out_of_stock"],
            "by_category": {c.value: by_category.get(c.value, 0) for c in Category},
        }

    def close(self) -> None:
        """Release per-record locks. Connections are per operation, so nothing else is held."""
        with self._registry_lock:
            self._record_locks.clear()

    # ------------------------- Helpers ------------------------- #
    @staticmethod
    def _fetch(conn: sqlite3.Connection, book_id: str) -> Optional[BookRecord]:
        row = conn.execute(f"SELECT {_COLUMNS} FROM books WHERE id = ?", (book_id,)).fetchone()
        return BookRecord.from_row(row) if row else None

    @staticmethod
    def _isbn_taken(conn: sqlite3.Connection, isbn: str, exclude_id: Optional[str] = None) -> bool:
        if exclude_id is None:
            row = conn.execute("SELECT 1 FROM books WHERE isbn = ?", (isbn,)).fetchone()
        else:
            row = conn.execute(
                "SELECT 1 FROM books WHERE isbn = ? AND id != ?", (isbn, exclude_id)
            ).fetchone()
        return row is not None


def _as_candidate(fields: Fields) -> BookCandidate:
    if isinstance(fields, BookCandidate):
        return fields
    return BookCandidate.from_mapping(fields)


class _RecordLock:
    """A record lock plus the number of threads holding or waiting for it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0
