import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from elibrary.book import Book, BookAction, LedgerRecord
from elibrary.database import get_db_connection, initialize_database, utc_now
from elibrary.errors import (
    ConcurrencyConflictError,
    DuplicateIsbnError,
    NotFoundError,
    OperationCancelledError,
    OutOfStockError,
    StorageError,
    ValidationError,
)
from elibrary.repositories import BookRepository, LedgerRepository
from elibrary.retry import ConflictRetryPolicy
from elibrary.unit_of_work import UnitOfWork
from elibrary.validators import ISBNValidator, TextValidator, book_rule_errors

logger = logging.getLogger(__name__)


class Library:
    """Manages the catalog, stock changes and the lending ledger.

    Every stock change is a read-modify-write inside its own unit of work:
    the book is read with its version token, changed, written back only if
    the token is unchanged, and the matching ledger record is appended in the
    same transaction. Lost version checks are retried by ``retry_policy``.
    """

    def __init__(self, db_file: str, retry_policy: Optional[ConflictRetryPolicy] = None,
                 clock: Callable[[], str] = utc_now, seed: bool = False) -> None:
        self.db_file = db_file
        self.retry_policy = retry_policy or ConflictRetryPolicy()
        self._clock = clock
        initialize_database(db_file, seed=seed)

    # ------------------------- Commands ------------------------- #
    def create_book(self, name: str, author: str, isbn: str, publication_year: int,
                    quantity: int = 0) -> Book:
        """Add a new title to the catalog. Creation is not a lending action: no ledger record."""
        errors = book_rule_errors(name, author, isbn, publication_year, quantity)
        if errors:
            raise ValidationError(errors)

        isbn = ISBNValidator.normalize_isbn(isbn)
        with UnitOfWork(self.db_file) as uow:
            # Holding the write lock makes the duplicate check and the insert one step
            uow.begin(immediate=True)
            if uow.books.get_by_isbn(isbn):
                logger.warning(f"Create book failed: duplicate ISBN={isbn}")
                raise DuplicateIsbnError(isbn)

            book = uow.books.add(Book(name=name, author=author, isbn=isbn,
                                      publication_year=publication_year,
                                      available_quantity=quantity))
            uow.commit()

        logger.info(f"Created book {book.id} '{book.name}' with quantity {book.available_quantity}")
        return book

    def borrow_book(self, book_id: str, customer_name: str,
                    cancel_event: Optional[threading.Event] = None) -> Book:
        """Take one copy out of stock for ``customer_name``.

        Raises NotFoundError, OutOfStockError, ConflictExhaustedError or
        OperationCancelledError. Out of stock is a business fact and is never
        retried.
        """
        self._require_customer(customer_name)
        return self.retry_policy.execute(
            lambda: self._change_stock(book_id, customer_name, BookAction.BORROWED, cancel_event),
            name="BorrowBook",
            cancel_event=cancel_event,
        )

    def return_book(self, book_id: str, customer_name: str,
                    cancel_event: Optional[threading.Event] = None) -> Book:
        """Put one copy back into stock. There is no upper bound on stock."""
        self._require_customer(customer_name)
        return self.retry_policy.execute(
            lambda: self._change_stock(book_id, customer_name, BookAction.RETURNED, cancel_event),
            name="ReturnBook",
            cancel_event=cancel_event,
        )

    def _change_stock(self, book_id: str, customer_name: str, action: BookAction,
                      cancel_event: Optional[threading.Event]) -> Book:
        """One attempt of the borrow/return state machine, always from a fresh read."""
        operation = "BorrowBook" if action is BookAction.BORROWED else "ReturnBook"
        with UnitOfWork(self.db_file) as uow:
            uow.begin(immediate=True)
            book = uow.books.get_by_id(book_id)
            if book is None:
                logger.warning(f"{operation} failed: book not found. BookId={book_id}")
                raise NotFoundError(book_id)

            if action is BookAction.BORROWED:
                if book.available_quantity <= 0:
                    logger.warning(f"{operation} failed: out of stock. BookId={book_id}, Name={book.name}")
                    raise OutOfStockError(book_id, book.name)
                book.available_quantity -= 1
            else:
                book.available_quantity += 1

            try:
                updated = uow.books.update(book)
            except ConcurrencyConflictError:
                logger.info(f"{operation} lost version check on book {book_id} (version {book.version})")
                raise

            uow.records.append(LedgerRecord(
                book_id=updated.id,
                customer_name=customer_name,
                action=action,
                timestamp=self._clock(),
            ))

            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError(operation)
            uow.commit()

        logger.info(
            f"{operation} succeeded. BookId={book_id}, Customer={customer_name.strip()}, "
            f"RemainingQuantity={updated.available_quantity}"
        )
        return updated

    @staticmethod
    def _require_customer(customer_name: Optional[str]) -> None:
        if TextValidator.is_blank(customer_name):
            raise ValidationError("Customer name is required")

    # ------------------------- Queries ------------------------- #
    def get_book(self, book_id: str) -> Book:
        with self._reader() as conn:
            book = BookRepository(conn).get_by_id(book_id)
        if book is None:
            raise NotFoundError(book_id)
        return book

    def find_book_by_isbn(self, isbn: str) -> Optional[Book]:
        with self._reader() as conn:
            return BookRepository(conn).get_by_isbn(ISBNValidator.normalize_isbn(isbn))

    def list_books(self) -> List[Book]:
        """All books in the catalog (fresh on every call)."""
        with self._reader() as conn:
            return BookRepository(conn).list_all()

    def search_books(self, name: Optional[str] = None, author: Optional[str] = None,
                     isbn: Optional[str] = None) -> List[Book]:
        # Stored ISBNs are normalized, so "978-0-75" must match "978075..."
        if isbn and ISBNValidator.normalize_isbn(isbn):
            isbn = ISBNValidator.normalize_isbn(isbn)
        with self._reader() as conn:
            books = BookRepository(conn).search(name=name, author=author, isbn=isbn)
        logger.info(f"Search completed. Found {len(books)} books")
        return books

    def list_ledger(self) -> List[LedgerRecord]:
        """Borrow/return history, newest first."""
        with self._reader() as conn:
            return LedgerRepository(conn).list_all()

    def list_ledger_for_book(self, book_id: str) -> List[LedgerRecord]:
        with self._reader() as conn:
            return LedgerRepository(conn).list_for_book(book_id)

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        """Short-lived autocommit connection for read-only queries."""
        try:
            conn = get_db_connection(self.db_file)
        except sqlite3.Error as e:
            raise StorageError(f"Could not open database {self.db_file}: {e}") from e
        try:
            yield conn
        finally:
            conn.close()
