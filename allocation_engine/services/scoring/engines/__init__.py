# allocation_engine/services/scoring/engines/__init__.py

from .weighted import WeightedModelParams, WeightedScoringModel

__all__ = ["WeightedModelParams", "WeightedScoringModel"]
