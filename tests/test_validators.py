import uuid

import pytest

from elibrary.commands import BorrowBookCommand, CreateBookCommand, SearchBooksQuery
from elibrary.validators import (
    ISBNValidator,
    TextValidator,
    book_id_errors,
    validate_create_book,
    validate_lending,
    validate_search,
)


@pytest.mark.parametrize("raw, expected", [
    ("978-0-7564-1926-4", "9780756419264"),
    (" 0-306-40615-2 ", "0306406152"),
    ("0-8044-2957-x", "080442957X"),
    (None, ""),
])
def test_normalize_isbn(raw, expected):
    assert ISBNValidator.normalize_isbn(raw) == expected


@pytest.mark.parametrize("isbn, valid", [
    ("9780756419264", True),
    ("0306406152", True),
    ("080442957X", True),
    ("978-0-7564-1926-4", True),
    ("0 306 40615 2", True),
    ("97807564", False),
    ("12345678901234", False),
    ("978075641926A", False),
    ("ABCDEFGHIJ", False),
    ("9999", False),
    ("   ", False),
    (None, False),
])
def test_isbn_shape(isbn, valid):
    assert ISBNValidator.is_valid_isbn(isbn) is valid


def test_customer_name_rules():
    assert TextValidator.validate_customer_name("Mary-Jane O'Neil") == []
    assert TextValidator.validate_customer_name("  ") == ["Customer name is required"]
    assert "Customer name must be at least 2 characters" in TextValidator.validate_customer_name("A")
    assert "Customer name contains invalid characters" in TextValidator.validate_customer_name("Bob123")
    assert any("cannot exceed" in e for e in TextValidator.validate_customer_name("a" * 1001))


def test_book_id_rules():
    assert book_id_errors(str(uuid.uuid4())) == []
    assert book_id_errors(None) == ["Book ID is required"]
    assert book_id_errors("nope") == ["Book ID is not a valid identifier"]
    assert book_id_errors(str(uuid.UUID(int=0))) == ["Book ID cannot be empty"]


def test_create_book_collects_every_failure():
    errors = validate_create_book(CreateBookCommand("", "", "", 3000, -5))
    assert errors == [
        "Book name is required",
        "Author name is required",
        "ISBN is required",
        "Publication year must be between 1000 and current year",
        "Quantity cannot be negative",
    ]


def test_create_book_length_limits():
    errors = validate_create_book(CreateBookCommand("n" * 1001, "Author", "9999", 2000, 1))
    assert errors == ["Book name cannot exceed 1000 characters"]


def test_strict_isbn_only_when_enabled():
    command = CreateBookCommand("Name", "Author", "9999", 2000, 1)
    assert validate_create_book(command) == []
    assert validate_create_book(command, strict_isbn=True) == [
        "ISBN format is invalid. Expected format: ISBN-10 or ISBN-13"
    ]


def test_lending_combines_id_and_customer_rules():
    errors = validate_lending(BorrowBookCommand("nope", ""))
    assert errors == ["Book ID is not a valid identifier", "Customer name is required"]


def test_search_requires_a_criterion():
    assert validate_search(SearchBooksQuery(name=" ", author=None)) == [
        "At least one search criterion must be provided"
    ]
    assert validate_search(SearchBooksQuery(isbn="978")) == []
