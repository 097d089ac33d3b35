from __future__ import annotations

from enum import Enum


class BookAction(str, Enum):
    BORROWED = "Borrowed"
    RETURNED = "Returned"


class Book:
    """Represents a single title in the catalog and its available stock."""

    def __init__(self, name: str, author: str, isbn: str, publication_year: int,
                 available_quantity: int = 0, id: str | None = None,
                 version: int = 0, created_at: str | None = None) -> None:
        self.id = id
        self.name = name.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.publication_year = int(publication_year)
        self.available_quantity = int(available_quantity)
        # Advanced by the database on every stock change; callers never set it
        self.version = version
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} by {self.author} (ISBN: {self.isbn})"

    def __repr__(self) -> str:  # pragma: no cover
        return (f"Book(id={self.id!r}, isbn={self.isbn!r}, "
                f"available_quantity={self.available_quantity}, version={self.version})")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "author": self.author,
            "isbn": self.isbn,
            "publication_year": self.publication_year,
            "available_quantity": self.available_quantity,
            "version": self.version,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # sqlite rows use the column name row_version for the token
        version = data.get("version", data.get("row_version", 0))
        return Book(
            id=data.get("id"),
            name=data["name"],
            author=data["author"],
            isbn=data["isbn"],
            publication_year=data["publication_year"],
            available_quantity=data.get("available_quantity", 0),
            version=version,
            created_at=data.get("created_at"),
        )


class LedgerRecord:
    """An immutable borrow/return fact. Written once, never updated."""

    def __init__(self, book_id: str, customer_name: str, action: BookAction | str,
                 timestamp: str, id: str | None = None) -> None:
        self.id = id
        self.book_id = book_id
        self.customer_name = customer_name.strip()
        self.action = BookAction(action)
        self.timestamp = timestamp

    def __repr__(self) -> str:  # pragma: no cover
        return (f"LedgerRecord(book_id={self.book_id!r}, action={self.action.value}, "
                f"customer_name={self.customer_name!r}, timestamp={self.timestamp!r})")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "customer_name": self.customer_name,
            "action": self.action.value,
            "timestamp": self.timestamp,
        }

    @staticmethod
    def from_dict(data: dict) -> "LedgerRecord":
        return LedgerRecord(
            id=data.get("id"),
            book_id=data["book_id"],
            customer_name=data["customer_name"],
            action=data["action"],
            timestamp=data["timestamp"],
        )
