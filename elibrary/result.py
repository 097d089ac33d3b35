from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from elibrary.errors import LibraryError

T = TypeVar("T")


@dataclass(frozen=True)
class LibraryResult(Generic[T]):
    """Outcome of a pipeline call: a value, or an error code plus message.

    Boundary layers (HTTP, CLI) translate ``error_code`` into their own
    representation; no result ever carries a partially applied change.
    """

    is_success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        return not self.is_success

    @classmethod
    def success(cls, value: T) -> "LibraryResult[T]":
        return cls(True, value=value)

    @classmethod
    def failure(cls, error: str, error_code: str) -> "LibraryResult[T]":
        return cls(False, error=error, error_code=error_code)

    @classmethod
    def from_error(cls, exc: LibraryError) -> "LibraryResult[T]":
        return cls.failure(exc.message, exc.code)

    def __str__(self) -> str:  # pragma: no cover
        if self.is_success:
            return f"Success: {self.value}"
        return f"Failure: {self.error} (Code: {self.error_code or 'N/A'})"

