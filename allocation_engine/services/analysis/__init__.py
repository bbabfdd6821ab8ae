from .recommendations import (
    build_metrics,
    build_recommendations,
    confidence_score,
    recommendation_id,
    result_status,
)
from .risk_analyzer import RiskAnalyzer, bottleneck_severity
from .scenario_generator import ScenarioGenerator, ScenarioTemplate, templates_from_settings

__all__ = [
    "build_metrics",
    "build_recommendations",
    "confidence_score",
    "recommendation_id",
    "result_status",
    "RiskAnalyzer",
    "bottleneck_severity",
    "ScenarioGenerator",
    "ScenarioTemplate",
    "templates_from_settings",
]
