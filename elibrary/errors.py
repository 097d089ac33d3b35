from __future__ import annotations

from typing import List, Optional


class ErrorCodes:
    """Stable, machine-readable error kinds carried by every failure."""

    NOT_FOUND = "NOT_FOUND"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DUPLICATE_ISBN = "DUPLICATE_ISBN"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    CONFLICT_EXHAUSTED = "CONFLICT_EXHAUSTED"
    CANCELLED = "CANCELLED"
    TRANSACTION_ERROR = "TRANSACTION_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"


class LibraryError(Exception):
    code = "LIBRARY_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LibraryError, ValueError):
    code = ErrorCodes.VALIDATION_ERROR

    def __init__(self, errors: List[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NotFoundError(LibraryError, LookupError):
    code = ErrorCodes.NOT_FOUND

    def __init__(self, book_id: str) -> None:
        super().__init__(f"Book with ID {book_id} not found")
        self.book_id = book_id


class OutOfStockError(LibraryError):
    code = ErrorCodes.OUT_OF_STOCK

    def __init__(self, book_id: str, name: str) -> None:
        super().__init__(f"Book '{name}' is out of stock")
        self.book_id = book_id


class DuplicateIsbnError(LibraryError, ValueError):
    code = ErrorCodes.DUPLICATE_ISBN

    def __init__(self, isbn: str) -> None:
        super().__init__(f"Book with ISBN '{isbn}' already exists")
        self.isbn = isbn


class ConcurrencyConflictError(LibraryError):
    code = ErrorCodes.CONCURRENCY_CONFLICT

    def __init__(self, book_id: Optional[str] = None, message: Optional[str] = None) -> None:
        super().__init__(message or f"Book {book_id} was modified by another request")
        self.book_id = book_id


class ConflictExhaustedError(ConcurrencyConflictError):
    code = ErrorCodes.CONFLICT_EXHAUSTED

    def __init__(self, operation: str, attempts: int, book_id: Optional[str] = None) -> None:
        super().__init__(
            book_id,
            f"{operation} could not be completed after {attempts} attempts due to "
            f"concurrent updates; please resubmit",
        )
        self.operation = operation
        self.attempts = attempts


class OperationCancelledError(LibraryError):
    code = ErrorCodes.CANCELLED

    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation} was cancelled before it was committed")
        self.operation = operation


class TransactionError(LibraryError):
    code = ErrorCodes.TRANSACTION_ERROR


class StorageError(LibraryError):
    code = ErrorCodes.STORAGE_ERROR
