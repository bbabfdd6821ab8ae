# allocation_engine/services/scoring/engines/weighted.py

from __future__ import annotations

import math
from dataclasses import dataclass

from allocation_engine.services.features.extractor import FeatureVector
from allocation_engine.services.scoring.interfaces import ScorePrediction
from allocation_engine.utils.numeric import clamp


@dataclass(frozen=True)
class WeightedModelParams:
    # Logistic success model: sigmoid(intercept + sum(weight * feature))
    intercept: float = 0.5
    w_proficiency: float = 2.0
    w_experience: float = 0.8
    w_condition: float = 0.5
    w_accessibility: float = 0.5
    w_complexity: float = -1.0
    w_season: float = -0.5
    w_delay: float = -1.5
    w_overrun: float = -1.0

    # Linear duration model around a factor of 1.0
    d_complexity: float = 0.4
    d_season: float = 0.2
    d_delay: float = 0.5
    d_proficiency: float = -0.4
    proficiency_pivot: float = 0.6  # proficiency 3/5 is neutral
    d_experience: float = -0.1
    d_inaccessibility: float = 0.2

    min_duration_factor: float = 0.5
    max_duration_factor: float = 2.0
    unqualified_duration_factor: float = 2.0


def _sigmoid(x: float) -> float:
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


class WeightedScoringModel:
    """Deterministic weighted-formula scoring model.

    success = sigmoid(0.5 + 2.0*prof + 0.8*exp + 0.5*cond + 0.5*access
                      - 1.0*complexity - 0.5*season - 1.5*delay - 1.0*overrun)
    duration factor = 1 + 0.4*complexity + 0.2*season + 0.5*delay
                      - 0.4*(prof - 0.6) - 0.1*exp + 0.2*(1 - access), clamped to [0.5, 2.0]

    An unqualified pairing scores success 0 and the maximum duration factor so
    the optimizer penalizes it instead of failing.
    """

    name = "weighted"

    def __init__(self, params: WeightedModelParams | None = None) -> None:
        self.params = params or WeightedModelParams()

    def score(self, features: FeatureVector) -> ScorePrediction:
        p = self.params
        if features.is_unqualified:
            return ScorePrediction(success_probability=0.0, expected_duration_factor=p.unqualified_duration_factor)

        logit = (
            p.intercept
            + p.w_proficiency * features.proficiency
            + p.w_experience * features.experience
            + p.w_condition * features.equipment_condition
            + p.w_accessibility * features.site_accessibility
            + p.w_complexity * features.task_complexity
            + p.w_season * features.seasonal_indicator
            + p.w_delay * features.historical_delay_rate
            + p.w_overrun * features.historical_overrun_rate
        )
        success = clamp(_sigmoid(logit), 0.0, 1.0)

        factor = (
            1.0
            + p.d_complexity * features.task_complexity
            + p.d_season * features.seasonal_indicator
            + p.d_delay * features.historical_delay_rate
            + p.d_proficiency * (features.proficiency - p.proficiency_pivot)
            + p.d_experience * features.experience
            + p.d_inaccessibility * (1.0 - features.site_accessibility)
        )
        factor = clamp(factor, p.min_duration_factor, p.max_duration_factor)

        return ScorePrediction(success_probability=success, expected_duration_factor=factor)


__all__ = ["WeightedModelParams", "WeightedScoringModel"]
