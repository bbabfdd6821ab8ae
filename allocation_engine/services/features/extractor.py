# allocation_engine/services/features/extractor.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

from allocation_engine.schemas.domain import Resource, ResourceType, Task
from allocation_engine.utils.numeric import clamp

# Order is part of the contract: a trained model substituted for the weighted
# engine consumes FeatureVector.as_tuple() positionally.
FEATURE_NAMES: Tuple[str, ...] = (
    "task_complexity",
    "task_duration",
    "proficiency",
    "experience",
    "equipment_condition",
    "site_accessibility",
    "seasonal_indicator",
    "historical_delay_rate",
    "historical_overrun_rate",
    "unqualified",
)

# Normalization scales
MAX_COMPLEXITY = 10.0
DURATION_SCALE_HOURS = 160.0  # one working month
MAX_PROFICIENCY = 5.0
EXPERIENCE_SCALE_YEARS = 20.0
MAX_CONDITION = 5.0
MAX_ACCESSIBILITY = 5.0
NEUTRAL_PROFICIENCY = 3

# Meteorological seasons (northern hemisphere), 1.0 = hardest conditions.
_SEASON_BY_MONTH = {
    12: 1.0, 1: 1.0, 2: 1.0,      # winter
    3: 0.25, 4: 0.25, 5: 0.25,    # spring
    6: 0.0, 7: 0.0, 8: 0.0,       # summer
    9: 0.5, 10: 0.5, 11: 0.5,     # autumn
}


def seasonal_indicator(d: date) -> float:
    return _SEASON_BY_MONTH[d.month]


@dataclass(frozen=True)
class FeatureVector:
    """Fixed-size normalized features of one (task, resource) pairing; all fields in [0, 1]."""
    task_complexity: float
    task_duration: float
    proficiency: float
    experience: float
    equipment_condition: float
    site_accessibility: float
    seasonal_indicator: float
    historical_delay_rate: float
    historical_overrun_rate: float
    unqualified: float = 0.0

    @property
    def is_unqualified(self) -> bool:
        return self.unqualified >= 1.0

    def as_tuple(self) -> Tuple[float, ...]:
        return tuple(getattr(self, name) for name in FEATURE_NAMES)


@dataclass(frozen=True)
class ExtractionContext:
    """
    Request-scoped inputs the extractor needs besides the task and resource.

    reference_date drives the seasonal indicator (the task's earliest start
    wins when it has one). extra_required_skills are the constraint-level
    skills applied to every task.
    """
    reference_date: date
    extra_required_skills: Tuple[str, ...] = field(default_factory=tuple)


class FeatureExtractor:
    """Pure, deterministic mapping (task, resource, context) -> FeatureVector."""

    def required_skills(self, task: Task, context: ExtractionContext) -> List[str]:
        seen: List[str] = []
        for skill in list(task.required_skills) + list(context.extra_required_skills):
            if skill not in seen:
                seen.append(skill)
        return seen

    def is_qualified(self, task: Task, resource: Resource, context: ExtractionContext) -> bool:
        if resource.resource_type != task.resource_type:
            return False
        return resource.has_skills(self.required_skills(task, context), task.min_proficiency)

    def extract(self, task: Task, resource: Resource, context: ExtractionContext) -> FeatureVector:
        skills = self.required_skills(task, context)
        qualified = self.is_qualified(task, resource, context)

        if skills:
            proficiencies = [resource.proficiency(s) for s in skills]
            years = [resource.experience(s) for s in skills]
        elif resource.capabilities:
            proficiencies = [c.proficiency for c in resource.capabilities]
            years = [c.years_experience for c in resource.capabilities]
        else:
            proficiencies = [NEUTRAL_PROFICIENCY]
            years = [0.0]

        avg_proficiency = sum(proficiencies) / len(proficiencies)
        avg_years = sum(years) / len(years)

        if resource.resource_type == ResourceType.EQUIPMENT:
            condition = (resource.condition or NEUTRAL_PROFICIENCY) / MAX_CONDITION
        else:
            condition = 1.0

        when: Optional[date] = task.earliest_start.date() if task.earliest_start else None
        season = seasonal_indicator(when or context.reference_date)

        return FeatureVector(
            task_complexity=task.complexity / MAX_COMPLEXITY,
            task_duration=clamp(task.base_duration_hours / DURATION_SCALE_HOURS, 0.0, 1.0),
            proficiency=clamp(avg_proficiency / MAX_PROFICIENCY, 0.0, 1.0),
            experience=clamp(avg_years / EXPERIENCE_SCALE_YEARS, 0.0, 1.0),
            equipment_condition=condition,
            site_accessibility=task.site_accessibility / MAX_ACCESSIBILITY,
            seasonal_indicator=season,
            historical_delay_rate=resource.historical_delay_rate,
            historical_overrun_rate=resource.historical_overrun_rate,
            unqualified=0.0 if qualified else 1.0,
        )


__all__ = [
    "FEATURE_NAMES",
    "FeatureVector",
    "ExtractionContext",
    "FeatureExtractor",
    "seasonal_indicator",
]
