# allocation_engine/utils/numeric.py

from __future__ import annotations

from typing import Iterable, Optional


def clamp(value: Optional[float], min_value: float, max_value: float) -> float:
    """Clamp a possibly None float into [min_value, max_value]. None -> min_value."""
    if value is None:
        return min_value
    return max(min_value, min(max_value, value))


def mean(values: Iterable[float]) -> float:
    items = list(values)
    return sum(items) / len(items) if items else 0.0


def variance(values: Iterable[float]) -> float:
    """Population variance (0.0 for fewer than two values)."""
    items = list(values)
    if len(items) < 2:
        return 0.0
    m = sum(items) / len(items)
    return sum((v - m) ** 2 for v in items) / len(items)


def pct(part: float, whole: float) -> float:
    """part as a percentage of whole; 0.0 when whole is not positive."""
    if whole <= 0:
        return 0.0
    return part / whole * 100.0


__all__ = ["clamp", "mean", "variance", "pct"]
