"""SQLite persistence for the book inventory.

Each operation opens its own short-lived connection, so the store can be used
from many threads at once. Writes run inside ``BEGIN IMMEDIATE`` transactions;
readers rely on WAL mode to see a consistent row while a writer is active.
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from book_inventory.book import Category
from book_inventory.errors import StorageUnavailable

logger = logging.getLogger(__name__)


def _contains_ci(haystack: Optional[str], needle: Optional[str]) -> int:
    """Case-insensitive substring test registered as an SQL function.

    SQLite's own LIKE/lower() only fold ASCII.
    """
    if haystack is None or needle is None:
        return 0
    return int(needle.casefold() in haystack.casefold())


class Database:
    """Connection factory and schema owner for one SQLite database file."""

    def __init__(self, db_file: str, timeout: float = 5.0) -> None:
        self.db_file = db_file
        self.timeout = timeout

    def connect(self) -> sqlite3.Connection:
        try:
            # isolation_level=None: we issue BEGIN/COMMIT ourselves
            conn = sqlite3.connect(
                self.db_file,
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            logger.error("Could not open database %s: %s", self.db_file, exc)
            raise StorageUnavailable(f"Could not open database: {exc}") from exc
        conn.row_factory = sqlite3.Row
        conn.create_function("contains_ci", 2, _contains_ci, deterministic=True)
        return conn

    @contextmanager
    def reading(self) -> Iterator[sqlite3.Connection]:
        """Connection for read-only statements."""
        conn = self.connect()
        try:
            yield conn
        except sqlite3.Error as exc:
            logger.error("Database read failed: %s", exc)
            raise StorageUnavailable(f"Database read failed: {exc}") from exc
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction; rolled back on any exception.

        IntegrityError is re-raised as-is so the store can map constraint
        violations to its own error kinds. Other sqlite errors become
        StorageUnavailable.
        """
        conn = self.connect()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                logger.error("Could not begin transaction: %s", exc)
                raise StorageUnavailable(f"Could not begin transaction: {exc}") from exc
            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.IntegrityError:
                conn.execute("ROLLBACK")
                raise
            except sqlite3.Error as exc:
                self._rollback_quietly(conn)
                logger.error("Database write failed: %s", exc)
                raise StorageUnavailable(f"Database write failed: {exc}") from exc
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    @staticmethod
    def _rollback_quietly(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error as exc:
                logger.warning("Rollback failed: %s", exc)

    def create_tables(self) -> None:
        """Create the books table and its indexes if they do not exist."""
        categories = ", ".join(f"'{c}'" for c in Category.values())
        conn = self.connect()
        try:
            # WAL lets readers proceed while a writer holds the write lock
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS books (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL CHECK(length(title) > 0),
                    author TEXT NOT NULL CHECK(length(author) > 0),
                    isbn TEXT NOT NULL CHECK(length(isbn) > 0),
                    category TEXT NOT NULL CHECK(category IN ({categories})),
                    publication_year INTEGER NOT NULL CHECK(publication_year >= 1000),
                    available_copies INTEGER NOT NULL DEFAULT 1 CHECK(available_copies >= 0),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_books_isbn ON books(isbn)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_books_category ON books(category)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_books_publication_year ON books(publication_year)")
        except sqlite3.Error as exc:
            logger.error("Could not initialize database %s: %s", self.db_file, exc)
            raise StorageUnavailable(f"Could not initialize database: {exc}") from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        """Make the database file usable; safe to call on every start."""
        self.create_tables()
        logger.debug("Database ready at %s", self.db_file)
