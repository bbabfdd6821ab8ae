# allocation_engine/errors.py
"""
Error taxonomy for the allocation engine.

Infeasibility and timeouts are NOT errors: they are reported on the result
(`feasible=False`, `completed=False`).
"""
from __future__ import annotations

from typing import List, Optional


class AllocationEngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(AllocationEngineError):
    """Request or input data rejected before any search begins."""

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        self.errors: List[str] = list(errors or [message])
        super().__init__(message)


class InfraError(AllocationEngineError):
    """Repository or result-store failure (raised after retries are exhausted)."""

    def __init__(self, message: str, operation: str = "", attempts: int = 0) -> None:
        self.operation = operation
        self.attempts = attempts
        super().__init__(message)


class NotFoundError(AllocationEngineError):
    """Unknown request id or recommendation id."""


class RunInProgressError(AllocationEngineError):
    """A run for this request id is already queued or running."""

    def __init__(self, request_id: str, status: str) -> None:
        self.request_id = request_id
        self.status = status
        super().__init__(f"Optimization {request_id} is already {status}")


__all__ = [
    "AllocationEngineError",
    "ValidationError",
    "InfraError",
    "NotFoundError",
    "RunInProgressError",
]
