import re
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from elibrary.commands import (
    BorrowBookCommand,
    CreateBookCommand,
    GetBookQuery,
    ReturnBookCommand,
    SearchBooksQuery,
)

MAX_TEXT_LENGTH = 1000
MIN_PUBLICATION_YEAR = 1000
CUSTOMER_NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-'.]+$")


class ISBNValidator:
    """ISBN normalization plus an ISBN-10/ISBN-13 shape check.

    The shape is only enforced when strict ISBN validation is enabled;
    otherwise any non-empty key is accepted as the catalog's business key.
    """

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        s = re.sub(r"[^0-9Xx]", "", raw)
        return s.upper()

    @staticmethod
    def is_valid_isbn(isbn: Optional[str]) -> bool:
        """Thirteen digits, or ten characters whose first nine are digits.

        Hyphens and spaces are ignored.
        """
        if isbn is None or not isbn.strip():
            return False
        clean = isbn.replace("-", "").replace(" ", "")
        if len(clean) == 13:
            return clean.isdigit()
        if len(clean) == 10:
            return clean[:9].isdigit()
        return False


class TextValidator:
    """Basic checks for free-text fields."""

    @staticmethod
    def is_blank(text: Optional[str]) -> bool:
        return text is None or not str(text).strip()

    @staticmethod
    def too_long(text: Optional[str], limit: int = MAX_TEXT_LENGTH) -> bool:
        return text is not None and len(text.strip()) > limit

    @staticmethod
    def validate_customer_name(name: Optional[str]) -> List[str]:
        if TextValidator.is_blank(name):
            return ["Customer name is required"]
        t = name.strip()
        errors = []
        if len(t) < 2:
            errors.append("Customer name must be at least 2 characters")
        if len(t) > MAX_TEXT_LENGTH:
            errors.append(f"Customer name cannot exceed {MAX_TEXT_LENGTH} characters")
        if not CUSTOMER_NAME_PATTERN.match(t):
            errors.append("Customer name contains invalid characters")
        return errors


def current_year() -> int:
    return datetime.now(timezone.utc).year


def book_rule_errors(name: Optional[str], author: Optional[str], isbn: Optional[str],
                     publication_year: Optional[int], quantity: Optional[int]) -> List[str]:
    """Business rules every new book must satisfy."""
    errors = []
    if TextValidator.is_blank(name):
        errors.append("Book name is required")
    if TextValidator.is_blank(author):
        errors.append("Author name is required")
    if not ISBNValidator.normalize_isbn(isbn):
        errors.append("ISBN is required")
    if publication_year is None:
        errors.append("Publication year is required")
    elif not MIN_PUBLICATION_YEAR <= publication_year <= current_year():
        errors.append(f"Publication year must be between {MIN_PUBLICATION_YEAR} and current year")
    if quantity is None or quantity < 0:
        errors.append("Quantity cannot be negative")
    return errors


def book_id_errors(book_id: Optional[str]) -> List[str]:
    if TextValidator.is_blank(book_id):
        return ["Book ID is required"]
    try:
        parsed = uuid.UUID(str(book_id).strip())
    except ValueError:
        return ["Book ID is not a valid identifier"]
    if parsed.int == 0:
        return ["Book ID cannot be empty"]
    return []


def validate_create_book(command: CreateBookCommand, strict_isbn: bool = False) -> List[str]:
    errors = book_rule_errors(command.name, command.author, command.isbn,
                              command.publication_year, command.quantity)
    if TextValidator.too_long(command.name):
        errors.append(f"Book name cannot exceed {MAX_TEXT_LENGTH} characters")
    if TextValidator.too_long(command.author):
        errors.append(f"Author name cannot exceed {MAX_TEXT_LENGTH} characters")
    if TextValidator.too_long(command.isbn):
        errors.append(f"ISBN cannot exceed {MAX_TEXT_LENGTH} characters")
    elif strict_isbn and command.isbn and not ISBNValidator.is_valid_isbn(command.isbn):
        errors.append("ISBN format is invalid. Expected format: ISBN-10 or ISBN-13")
    return errors


def validate_lending(command) -> List[str]:
    """Shared rules for BorrowBookCommand and ReturnBookCommand."""
    return book_id_errors(command.book_id) + TextValidator.validate_customer_name(command.customer_name)


def validate_search(query: SearchBooksQuery) -> List[str]:
    criteria = (query.name, query.author, query.isbn)
    if all(TextValidator.is_blank(c) for c in criteria):
        return ["At least one search criterion must be provided"]
    errors = []
    for label, value in (("Book name", query.name), ("Author name", query.author), ("ISBN", query.isbn)):
        if TextValidator.too_long(value):
            errors.append(f"{label} cannot exceed {MAX_TEXT_LENGTH} characters")
    return errors


def default_validators(strict_isbn: bool = False) -> Dict[type, List[Callable[[object], List[str]]]]:
    """Validators per request type, in the order they run."""
    return {
        CreateBookCommand: [lambda command: validate_create_book(command, strict_isbn)],
        BorrowBookCommand: [validate_lending],
        ReturnBookCommand: [validate_lending],
        SearchBooksQuery: [validate_search],
        GetBookQuery: [lambda query: book_id_errors(query.book_id)],
    }
