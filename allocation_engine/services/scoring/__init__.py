from .interfaces import (
    ScorePrediction,
    ScoringModel,
)
from .registry import (
    ModelInfo,
    SCORING_MODELS,
    get_model,
)

__all__ = [
    "ScorePrediction",
    "ScoringModel",
    "ModelInfo",
    "SCORING_MODELS",
    "get_model",
]
