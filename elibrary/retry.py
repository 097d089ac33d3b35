import logging
import threading
import time
from typing import Callable, Optional, TypeVar

from elibrary.errors import ConcurrencyConflictError, ConflictExhaustedError, OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConflictRetryPolicy:
    """Re-runs an operation that lost an optimistic version check.

    Only ``ConcurrencyConflictError`` is retried; every other error is terminal
    on its first occurrence. The operation must perform its whole
    read-modify-write from scratch, inside its own unit of work, so nothing is
    held while the policy sleeps.

    With the defaults the delays are 100ms, 200ms and 400ms, and the fourth
    failed execution is reported as ``ConflictExhaustedError``.
    """

    def __init__(self, max_retries: int = 3, base_delay: float = 0.1,
                 max_delay: Optional[float] = None,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if base_delay < 0:
            raise ValueError("base_delay cannot be negative")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "ConflictRetryPolicy":
        max_delay = settings.retry_max_delay_ms / 1000 if settings.retry_max_delay_ms else None
        return cls(
            max_retries=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_ms / 1000,
            max_delay=max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def execute(self, operation: Callable[[], T], *, name: str = "operation",
                cancel_event: Optional[threading.Event] = None) -> T:
        attempt = 0
        while True:
            try:
                return operation()
            except ConflictExhaustedError:
                raise
            except ConcurrencyConflictError as e:
                attempt += 1
                if attempt > self.max_retries:
                    logger.error(
                        f"All {self.max_retries} retry attempts exhausted for {name}. "
                        f"Concurrency conflict could not be resolved."
                    )
                    raise ConflictExhaustedError(name, attempt, e.book_id) from e

                delay = self.delay_for(attempt)
                logger.warning(
                    f"Retry attempt {attempt}/{self.max_retries} for {name} after "
                    f"{delay * 1000:.0f}ms delay due to concurrency conflict"
                )
                self._wait(delay, name, cancel_event)

    def _wait(self, delay: float, name: str, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is None:
            self._sleep(delay)
            return
        if cancel_event.is_set() or cancel_event.wait(delay):
            logger.info(f"{name} cancelled during retry backoff")
            raise OperationCancelledError(name)
