import itertools
import threading
import uuid

import pytest

from elibrary import library as library_module
from elibrary.book import BookAction
from elibrary.errors import (
    DuplicateIsbnError,
    NotFoundError,
    OperationCancelledError,
    OutOfStockError,
    StorageError,
    ValidationError,
)
from elibrary.library import Library
from elibrary.repositories import LedgerRepository


def _actions(lib, book_id):
    return [r.action for r in lib.list_ledger_for_book(book_id)]


def test_create_book_sets_quantity(lib):
    book = lib.create_book("Test Book", "Test Author", "9999", 2020, quantity=3)

    assert book.id
    assert book.available_quantity == 3
    assert book.version == 0
    assert lib.get_book(book.id).available_quantity == 3
    # Creation is not a lending action
    assert lib.list_ledger() == []


def test_sequential_borrows_until_out_of_stock(lib):
    book = lib.create_book("Test Book", "Test Author", "9999", 2020, quantity=3)

    quantities = [lib.borrow_book(book.id, "Alice").available_quantity for _ in range(3)]
    assert quantities == [2, 1, 0]

    with pytest.raises(OutOfStockError):
        lib.borrow_book(book.id, "Alice")

    assert lib.get_book(book.id).available_quantity == 0
    assert _actions(lib, book.id) == [BookAction.BORROWED] * 3


def test_return_appends_returned_record(lib):
    book = lib.create_book("Test Book", "Test Author", "9999", 2020, quantity=0)

    returned = lib.return_book(book.id, "Bob")

    assert returned.available_quantity == 1
    records = lib.list_ledger()
    assert len(records) == 1
    assert records[0].action is BookAction.RETURNED
    assert records[0].customer_name == "Bob"


def test_return_has_no_upper_bound(lib, book):
    for _ in range(5):
        lib.return_book(book.id, "Bob")
    assert lib.get_book(book.id).available_quantity == 8


def test_borrow_then_return_restores_quantity(lib, book):
    lib.borrow_book(book.id, "Alice")
    lib.return_book(book.id, "Carol")

    assert lib.get_book(book.id).available_quantity == book.available_quantity
    assert sorted(a.value for a in _actions(lib, book.id)) == ["Borrowed", "Returned"]


def test_every_stock_change_advances_version(lib, book):
    first = lib.borrow_book(book.id, "Alice")
    second = lib.return_book(book.id, "Alice")
    assert book.version < first.version < second.version


def test_negative_quantity_rejected_before_store_access(lib, monkeypatch):
    def no_store(*args, **kwargs):
        raise AssertionError("store must not be touched")

    monkeypatch.setattr(library_module, "UnitOfWork", no_store)

    with pytest.raises(ValidationError) as exc_info:
        lib.create_book("Test Book", "Test Author", "9999", 2020, quantity=-1)
    assert "Quantity cannot be negative" in exc_info.value.errors


@pytest.mark.parametrize("name, author, isbn, year", [
    ("", "Author", "9999", 2020),
    ("Name", "   ", "9999", 2020),
    ("Name", "Author", "--", 2020),
    ("Name", "Author", "9999", 999),
    ("Name", "Author", "9999", 3000),
])
def test_create_book_rule_violations(lib, name, author, isbn, year):
    with pytest.raises(ValidationError):
        lib.create_book(name, author, isbn, year, quantity=1)
    assert lib.list_books() == []


def test_duplicate_isbn_never_mutates_existing(lib, book):
    with pytest.raises(DuplicateIsbnError):
        lib.create_book("Another Name", "Another Author", book.isbn, 2001, quantity=9)

    stored = lib.get_book(book.id)
    assert stored.name == "Empire of Silence"
    assert stored.available_quantity == 3
    assert len(lib.list_books()) == 1


def test_duplicate_isbn_detected_after_normalization(lib, book):
    with pytest.raises(DuplicateIsbnError):
        lib.create_book("Other", "Other", "978-0-7564-1926-4", 2018)


def test_unknown_book_is_not_found(lib):
    missing = str(uuid.uuid4())
    with pytest.raises(NotFoundError):
        lib.borrow_book(missing, "Alice")
    with pytest.raises(NotFoundError):
        lib.return_book(missing, "Alice")
    with pytest.raises(NotFoundError):
        lib.get_book(missing)
    assert lib.list_ledger() == []


def test_blank_customer_rejected(lib, book):
    with pytest.raises(ValidationError):
        lib.borrow_book(book.id, "  ")
    assert lib.get_book(book.id).available_quantity == 3


def test_failed_ledger_append_rolls_back_stock_change(lib, book, monkeypatch):
    def broken_append(self, record):
        raise StorageError("disk full")

    monkeypatch.setattr(LedgerRepository, "append", broken_append)

    with pytest.raises(StorageError):
        lib.borrow_book(book.id, "Alice")

    monkeypatch.undo()
    stored = lib.get_book(book.id)
    assert stored.available_quantity == 3
    assert stored.version == book.version
    assert lib.list_ledger() == []


def test_cancelled_borrow_is_not_committed(lib, book):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(OperationCancelledError):
        lib.borrow_book(book.id, "Alice", cancel_event=cancel)

    assert lib.get_book(book.id).available_quantity == 3
    assert lib.list_ledger() == []


def test_ledger_lists_newest_first(db_file):
    ticks = itertools.count()
    lib = Library(db_file, clock=lambda: f"2024-01-01T00:00:{next(ticks):02d}.000000+00:00")
    book = lib.create_book("Test Book", "Test Author", "9999", 2020, quantity=2)

    lib.borrow_book(book.id, "Alice")
    lib.borrow_book(book.id, "Bob")
    lib.return_book(book.id, "Alice")

    records = lib.list_ledger()
    assert [(r.customer_name, r.action.value) for r in records] == [
        ("Alice", "Returned"),
        ("Bob", "Borrowed"),
        ("Alice", "Borrowed"),
    ]


def test_search_combines_criteria(lib):
    lib.create_book("Empire of Silence", "Christopher Ruocchio", "9780756419264", 2018, 3)
    lib.create_book("Howling Dark", "Christopher Ruocchio", "9780756419271", 2019, 3)
    lib.create_book("Dune", "Frank Herbert", "9780441013593", 1965, 1)

    assert {b.name for b in lib.search_books(author="ruocchio")} == {"Empire of Silence", "Howling Dark"}
    assert [b.name for b in lib.search_books(name="dark", author="Ruocchio")] == ["Howling Dark"]
    assert lib.search_books(name="Dune", author="Ruocchio") == []
    assert [b.name for b in lib.search_books(isbn="978-0-441")] == ["Dune"]


def test_search_treats_wildcards_literally(lib):
    lib.create_book("100% Pure", "Author", "1111", 2000, 1)
    lib.create_book("1000 Ways", "Author", "2222", 2000, 1)

    assert [b.name for b in lib.search_books(name="100%")] == ["100% Pure"]


def test_seeded_catalog(db_file):
    lib = Library(db_file, seed=True)
    names = [b.name for b in lib.list_books()]
    assert names == ["Demon in White", "Empire of Silence", "Howling Dark"]

    # Seeding an existing catalog is a no-op
    Library(db_file, seed=True)
    assert len(lib.list_books()) == 3


def test_find_book_by_isbn(lib, book):
    assert lib.find_book_by_isbn("978-0-7564-1926-4").id == book.id
    assert lib.find_book_by_isbn("0000") is None
