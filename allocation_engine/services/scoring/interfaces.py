# allocation_engine/services/scoring/interfaces.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from allocation_engine.services.features.extractor import FeatureVector


@dataclass(frozen=True)
class ScorePrediction:
    """Result returned by a scoring model.

    success_probability: likelihood the resource completes the task on plan, in [0, 1]
    expected_duration_factor: multiplier applied to the task's base duration, > 0
    """
    success_probability: float
    expected_duration_factor: float


class ScoringModel(Protocol):
    """Protocol that all scoring models must satisfy.

    Implementations must be pure and safe to call from several fitness
    worker threads at once (parameters are read-only).
    """

    name: str  # registry key

    def score(self, features: FeatureVector) -> ScorePrediction:  # pragma: no cover - interface only
        ...


__all__ = [
    "ScorePrediction",
    "ScoringModel",
]
