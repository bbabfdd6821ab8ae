# allocation_engine/services/scoring/registry.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from allocation_engine.services.scoring.interfaces import ScoringModel
from allocation_engine.services.scoring.engines import WeightedScoringModel


@dataclass(frozen=True)
class ModelInfo:
    name: str
    label: str
    description: str
    model: ScoringModel


SCORING_MODELS: Dict[str, ModelInfo] = {
    "weighted": ModelInfo(
        name="weighted",
        label="Weighted formula",
        description="Logistic success probability and linear duration factor over the feature vector",
        model=WeightedScoringModel(),
    ),
}


def get_model(name: str) -> ScoringModel:
    info = SCORING_MODELS.get(name)
    if not info:
        raise ValueError(f"Unknown scoring model: {name}")
    return info.model


__all__ = [
    "ModelInfo",
    "SCORING_MODELS",
    "get_model",
]
