# allocation_engine/utils/retry.py
"""
Bounded retry for collaborator calls.

Only InfraError is retried. Backoff is exponential (base_delay * 2**(attempt-1))
and the whole loop is capped by max_total_seconds of wall-clock time.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from allocation_engine.errors import InfraError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    fn: Callable[[], T],
    *,
    operation: str,
    max_attempts: int,
    base_delay: float,
    max_total_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call fn until it succeeds, retrying InfraError with backoff; re-raise the last one."""
    max_attempts = max(1, int(max_attempts))
    started = clock()
    last_error: Optional[InfraError] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except InfraError as exc:
            last_error = exc
            logger.warning(
                "retry.attempt_failed",
                extra={"attempt": attempt, "total": max_attempts, "reason": f"{operation}: {exc}"},
            )
            if attempt == max_attempts:
                break
            delay = base_delay * (2 ** (attempt - 1))
            remaining = max_total_seconds - (clock() - started)
            if remaining <= 0:
                break
            sleep(min(delay, remaining))

    assert last_error is not None
    raise InfraError(
        f"{operation} failed after {attempt} attempt(s): {last_error}",
        operation=operation,
        attempts=attempt,
    ) from last_error


__all__ = ["call_with_retry"]
