"""Inventory and ledger stores.

Both repositories run on a connection owned by a ``UnitOfWork`` (or, for
plain reads, a short-lived connection). They never begin, commit or roll back
transactions themselves.
"""
import logging
import sqlite3
import uuid
from typing import List, Optional

from elibrary.book import Book, LedgerRecord
from elibrary.database import utc_now
from elibrary.errors import ConcurrencyConflictError, DuplicateIsbnError, StorageError

logger = logging.getLogger(__name__)

BOOK_COLUMNS = """
    id, isbn, name, author, publication_year, available_quantity, row_version, created_at
"""

RECORD_COLUMNS = "id, book_id, customer_name, action, timestamp"


def is_lock_error(exc: sqlite3.Error) -> bool:
    """True for SQLite busy/locked failures, i.e. a competing writer."""
    message = str(exc).lower()
    return isinstance(exc, sqlite3.OperationalError) and ("locked" in message or "busy" in message)


class BookRepository:
    """Book records with an optimistic version token per row."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def get_by_id(self, book_id: str) -> Optional[Book]:
        row = self._fetch_one(f"SELECT {BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,))
        return Book.from_dict(dict(row)) if row else None

    def get_by_isbn(self, isbn: str) -> Optional[Book]:
        row = self._fetch_one(f"SELECT {BOOK_COLUMNS} FROM books WHERE isbn = ?", (isbn,))
        return Book.from_dict(dict(row)) if row else None

    def list_all(self) -> List[Book]:
        rows = self._fetch_all(f"SELECT {BOOK_COLUMNS} FROM books ORDER BY name, author")
        return [Book.from_dict(dict(row)) for row in rows]

    def search(self, name: Optional[str] = None, author: Optional[str] = None,
               isbn: Optional[str] = None) -> List[Book]:
        """Substring match on each non-empty criterion; criteria are AND-combined."""
        clauses = []
        params = []
        for column, value in (("name", name), ("author", author), ("isbn", isbn)):
            if value and value.strip():
                clauses.append(f"{column} LIKE ? ESCAPE '\\'")
                params.append(f"%{_escape_like(value.strip())}%")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetch_all(f"SELECT {BOOK_COLUMNS} FROM books {where} ORDER BY name, author", params)
        return [Book.from_dict(dict(row)) for row in rows]

    def add(self, book: Book) -> Book:
        """Insert a new book; assigns id, created_at and the initial version."""
        book.id = book.id or str(uuid.uuid4())
        book.created_at = utc_now()
        try:
            self.conn.execute(
                """
                INSERT INTO books
                    (id, isbn, name, author, publication_year, available_quantity, row_version, created_at)
                VALUES (?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (book.id, book.isbn, book.name, book.author, book.publication_year,
                 book.available_quantity, book.created_at),
            )
        except sqlite3.IntegrityError as e:
            if "isbn" in str(e).lower():
                raise DuplicateIsbnError(book.isbn) from e
            raise StorageError(f"Could not insert book: {e}") from e
        except sqlite3.Error as e:
            if is_lock_error(e):
                raise ConcurrencyConflictError(book.id, f"Could not insert book {book.isbn}: database is busy") from e
            raise StorageError(f"Could not insert book: {e}") from e
        book.version = 0
        return book

    def update(self, book: Book) -> Book:
        """Write the book's stock if its stored version still matches ``book.version``.

        Raises ConcurrencyConflictError when another request committed first.
        Returns the stored row, which carries the new version token.
        """
        try:
            cursor = self.conn.execute(
                "UPDATE books SET available_quantity = ? WHERE id = ? AND row_version = ?",
                (book.available_quantity, book.id, book.version),
            )
        except sqlite3.Error as e:
            if is_lock_error(e):
                # Our read snapshot is stale or a writer holds the lock
                raise ConcurrencyConflictError(book.id) from e
            raise StorageError(f"Could not update book {book.id}: {e}") from e

        if cursor.rowcount == 0:
            logger.debug(f"Version check failed for book {book.id} (expected version {book.version})")
            raise ConcurrencyConflictError(book.id)

        updated = self.get_by_id(book.id)
        return updated

    def _fetch_one(self, sql: str, params=()) -> Optional[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Could not read books: {e}") from e

    def _fetch_all(self, sql: str, params=()) -> List[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Could not read books: {e}") from e


class LedgerRepository:
    """Append-only borrow/return history. No update or delete is exposed."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def append(self, record: LedgerRecord) -> LedgerRecord:
        record.id = str(uuid.uuid4())
        try:
            self.conn.execute(
                f"INSERT INTO borrow_book_records ({RECORD_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (record.id, record.book_id, record.customer_name, record.action.value, record.timestamp),
            )
        except sqlite3.Error as e:
            if is_lock_error(e):
                raise ConcurrencyConflictError(record.book_id) from e
            raise StorageError(f"Could not append ledger record: {e}") from e
        return record

    def list_all(self) -> List[LedgerRecord]:
        """All records, newest first."""
        return self._query(
            f"SELECT {RECORD_COLUMNS} FROM borrow_book_records ORDER BY timestamp DESC, rowid DESC"
        )

    def list_for_book(self, book_id: str) -> List[LedgerRecord]:
        return self._query(
            f"SELECT {RECORD_COLUMNS} FROM borrow_book_records WHERE book_id = ? "
            "ORDER BY timestamp DESC, rowid DESC",
            (book_id,),
        )

    def _query(self, sql: str, params=()) -> List[LedgerRecord]:
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Could not read ledger: {e}") from e
        return [LedgerRecord.from_dict(dict(row)) for row in rows]


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
