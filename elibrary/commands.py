"""Requests accepted by the pipeline.

Commands change stock or the catalog; queries only read. Queries are never
wrapped in a transaction or retried.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CreateBookCommand:
    name: str
    author: str
    isbn: str
    publication_year: int
    quantity: int = 0

    is_command = True


@dataclass(frozen=True)
class BorrowBookCommand:
    book_id: str
    customer_name: str

    is_command = True


@dataclass(frozen=True)
class ReturnBookCommand:
    book_id: str
    customer_name: str

    is_command = True


@dataclass(frozen=True)
class ListBooksQuery:
    is_command = False


@dataclass(frozen=True)
class SearchBooksQuery:
    name: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None

    is_command = False


@dataclass(frozen=True)
class ListLedgerQuery:
    is_command = False


@dataclass(frozen=True)
class GetBookQuery:
    book_id: str

    is_command = False
