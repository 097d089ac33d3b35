"""Command/query pipeline.

Every request passes through an explicit, ordered list of stages before it
reaches its handler. A stage is a plain callable ``stage(request, next_)``
that may act before and after calling ``next_(request)``::

    logging -> timing -> validation -> handler

The list is built once at startup (see ``build_pipeline``) and passed around
by reference; nothing is discovered or registered implicitly.
"""
import functools
import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from elibrary.commands import (
    BorrowBookCommand,
    CreateBookCommand,
    GetBookQuery,
    ListBooksQuery,
    ListLedgerQuery,
    ReturnBookCommand,
    SearchBooksQuery,
)
from elibrary.errors import LibraryError, ValidationError
from elibrary.result import LibraryResult
from elibrary.validators import default_validators

logger = logging.getLogger(__name__)

NextStage = Callable[[Any], Any]
Stage = Callable[[Any, NextStage], Any]
Handler = Callable[[Any, Optional[threading.Event]], Any]
Validator = Callable[[Any], List[str]]


def logging_stage(request: Any, next_: NextStage) -> Any:
    """Logs every request before and after it is handled."""
    name = type(request).__name__
    kind = "command" if getattr(request, "is_command", False) else "query"
    logger.info(f"Handling {kind} {name}")
    try:
        response = next_(request)
    except LibraryError as e:
        logger.warning(f"{name} failed: [{e.code}] {e.message}")
        raise
    except Exception as e:
        logger.exception(f"Error handling {name}: {e}")
        raise
    logger.info(f"Successfully handled {name}")
    return response


def make_timing_stage(slow_threshold_ms: float,
                      clock: Callable[[], float] = time.perf_counter) -> Stage:
    """Measures each request; slow ones are logged as warnings."""

    def timing_stage(request: Any, next_: NextStage) -> Any:
        name = type(request).__name__
        started = clock()
        try:
            return next_(request)
        finally:
            elapsed_ms = (clock() - started) * 1000
            if elapsed_ms > slow_threshold_ms:
                logger.warning(f"Slow request {name}: {elapsed_ms:.1f}ms (threshold {slow_threshold_ms}ms)")
            else:
                logger.debug(f"{name} took {elapsed_ms:.1f}ms")

    return timing_stage


def make_validation_stage(validators: Dict[type, List[Validator]]) -> Stage:
    """Rejects malformed requests before any store is touched."""

    def validation_stage(request: Any, next_: NextStage) -> Any:
        failures: List[str] = []
        for validator in validators.get(type(request), []):
            failures.extend(validator(request))
        if failures:
            raise ValidationError(failures)
        return next_(request)

    return validation_stage


class Pipeline:
    def __init__(self, stages: List[Stage], handlers: Dict[type, Handler]) -> None:
        self.stages = list(stages)
        self.handlers = dict(handlers)

    def send(self, request: Any, cancel_event: Optional[threading.Event] = None) -> LibraryResult:
        """Run ``request`` through every stage and its handler.

        Engine failures come back as failed results carrying their error code.
        Anything else is unexpected: it is logged by the logging stage and
        re-raised to the caller.
        """
        handler = self.handlers.get(type(request))
        if handler is None:
            raise TypeError(f"No handler registered for {type(request).__name__}")

        def dispatch(req: Any) -> Any:
            return handler(req, cancel_event)

        chain: NextStage = dispatch
        for stage in reversed(self.stages):
            chain = functools.partial(stage, next_=chain)

        try:
            value = chain(request)
        except LibraryError as e:
            return LibraryResult.from_error(e)
        return LibraryResult.success(value)


def _normalize_id(book_id: str) -> str:
    # Ids are stored in canonical lower-case UUID form
    return str(uuid.UUID(book_id.strip()))


def library_handlers(library) -> Dict[type, Handler]:
    """Maps each request type onto the Library operation that serves it."""
    return {
        CreateBookCommand: lambda c, cancel: library.create_book(
            c.name, c.author, c.isbn, c.publication_year, c.quantity),
        BorrowBookCommand: lambda c, cancel: library.borrow_book(
            _normalize_id(c.book_id), c.customer_name, cancel_event=cancel),
        ReturnBookCommand: lambda c, cancel: library.return_book(
            _normalize_id(c.book_id), c.customer_name, cancel_event=cancel),
        ListBooksQuery: lambda q, cancel: library.list_books(),
        GetBookQuery: lambda q, cancel: library.get_book(_normalize_id(q.book_id)),
        SearchBooksQuery: lambda q, cancel: library.search_books(
            name=q.name, author=q.author, isbn=q.isbn),
        ListLedgerQuery: lambda q, cancel: library.list_ledger(),
    }


def build_pipeline(library, settings) -> Pipeline:
    stages: List[Stage] = [
        logging_stage,
        make_timing_stage(settings.slow_request_ms),
        make_validation_stage(default_validators(strict_isbn=settings.strict_isbn)),
    ]
    return Pipeline(stages, library_handlers(library))
