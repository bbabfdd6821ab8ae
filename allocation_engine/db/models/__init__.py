# allocation_engine/db/models/__init__.py

from .optimization_run import OptimizationRunRecord, RecommendationDecision

__all__ = [
    "OptimizationRunRecord",
    "RecommendationDecision",
]
