import logging
import sqlite3
from typing import Optional

from elibrary.database import get_db_connection
from elibrary.errors import ConcurrencyConflictError, StorageError, TransactionError
from elibrary.repositories import BookRepository, LedgerRepository, is_lock_error

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Groups a stock change and its ledger append into one atomic transaction.

    Use it as a context manager. It opens its own connection, so every request
    gets an independent unit of work::

        with UnitOfWork(db_file) as uow:
            uow.begin()
            book = uow.books.get_by_id(book_id)
            ...
            uow.commit()

    Leaving the ``with`` block with a transaction still open (early return,
    business-rule failure, exception, cancellation) rolls it back, so a
    transaction is never left dangling.
    """

    def __init__(self, db_file: str) -> None:
        self.db_file = db_file
        self.conn: Optional[sqlite3.Connection] = None
        self.books: Optional[BookRepository] = None
        self.records: Optional[LedgerRepository] = None
        self._in_transaction = False

    def __enter__(self) -> "UnitOfWork":
        try:
            self.conn = get_db_connection(self.db_file)
        except sqlite3.Error as e:
            raise StorageError(f"Could not open database {self.db_file}: {e}") from e
        self.books = BookRepository(self.conn)
        self.records = LedgerRepository(self.conn)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if self._in_transaction:
                if exc_type is None:
                    logger.warning("Unit of work closed without commit; rolling back")
                self.rollback()
        finally:
            if self.conn is not None:
                self.conn.close()
            self.conn = None
        return False

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def begin(self, immediate: bool = False) -> None:
        """Start a transaction.

        With ``immediate`` the write lock is taken up front, so reads inside the
        transaction are current and competing writers queue on the busy timeout
        instead of failing on a stale snapshot.
        """
        if self.conn is None:
            raise TransactionError("Unit of work is not open.")
        if self._in_transaction:
            raise TransactionError("A transaction is already in progress.")
        try:
            self.conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        except sqlite3.Error as e:
            if is_lock_error(e):
                raise ConcurrencyConflictError(message=f"Could not acquire the write lock: {e}") from e
            raise StorageError(f"Could not begin transaction: {e}") from e
        self._in_transaction = True

    def commit(self) -> None:
        """Persist every write since ``begin``. On failure, roll back and re-raise."""
        if not self._in_transaction:
            raise TransactionError("No transaction is in progress.")
        try:
            self.conn.execute("COMMIT")
        except sqlite3.Error as e:
            self.rollback()
            if is_lock_error(e):
                raise ConcurrencyConflictError(message=f"Commit failed due to a concurrent write: {e}") from e
            raise StorageError(f"Could not commit transaction: {e}") from e
        self._in_transaction = False

    def rollback(self) -> None:
        """Discard every write since ``begin``. A no-op when nothing is open."""
        if not self._in_transaction:
            return
        try:
            # SQLite may have ended the transaction itself after some errors
            if self.conn is not None and self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            raise StorageError(f"Could not roll back transaction: {e}") from e
        finally:
            self._in_transaction = False
