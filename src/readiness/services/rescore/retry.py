"""Per-call timeout and retry-once primitives for re-score persistence calls.

Policy:
- Each persistence call runs with a timeout
- A call that raises PersistenceError or times out is retried exactly once,
  after an exponential backoff delay
- Anything else (validation, configuration, stale writes) propagates untouched
- The whole batch is never retried; only the failing call

Backoff schedule (base=0.5s): attempt 0 -> 0.5s, attempt 1 -> 1.0s, ... capped.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Final, TypeVar

from readiness.errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS: Final[int] = 2
DEFAULT_CAP_SECONDS: Final[float] = 30.0


def compute_backoff_seconds(
    attempt_index: int,
    base_seconds: float,
    cap_seconds: float = DEFAULT_CAP_SECONDS,
) -> float:
    """Compute backoff delay in seconds for a given retry index.

    Uses exponential backoff: base * 2^attempt_index, capped at cap_seconds.

    Example:
        >>> compute_backoff_seconds(0, 0.5)
        0.5
        >>> compute_backoff_seconds(2, 0.5)
        2.0
    """
    if attempt_index < 0:
        return 0.0
    return float(min(base_seconds * (2**attempt_index), cap_seconds))


class PersistenceCaller:
    """Runs persistence calls with a timeout and a single retry.

    Calls execute on the given executor so a hung call can be abandoned;
    an abandoned call may still complete later, so callers reconcile
    writes that timed out.
    """

    def __init__(
        self,
        executor: Executor,
        timeout_seconds: float,
        backoff_seconds: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._executor = executor
        self._timeout_seconds = timeout_seconds
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    def call(self, operation: str, fn: Callable[[], T]) -> T:
        """Run fn, retrying once on PersistenceError or timeout.

        Args:
            operation: Operation name for logs and errors.
            fn: Zero-argument callable performing the persistence call.

        Returns:
            Whatever fn returns.

        Raises:
            PersistenceError: If both attempts fail.
        """
        last_error = PersistenceError(operation, "no attempt made")
        for attempt in range(MAX_ATTEMPTS):
            if attempt > 0:
                self._sleep(compute_backoff_seconds(attempt - 1, self._backoff_seconds))
            future = self._executor.submit(fn)
            try:
                return future.result(timeout=self._timeout_seconds)
            except FutureTimeoutError:
                future.cancel()
                last_error = PersistenceError(
                    operation, f"timed out after {self._timeout_seconds}s"
                )
            except PersistenceError as e:
                last_error = e
            logger.warning(
                "Persistence call %s failed (attempt %d/%d): %s",
                operation,
                attempt + 1,
                MAX_ATTEMPTS,
                last_error,
            )

        raise last_error
