# allocation_engine/schemas/request.py
"""
OptimizationRequest and its constraint / preference payloads.

A request selects tasks (by project) and resources (by filter) from the
collaborators, and carries everything else the run needs.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from allocation_engine.schemas.domain import ResourceType


class OptimizationGoal(str, Enum):
    MINIMIZE_COST = "minimize_cost"
    MINIMIZE_DURATION = "minimize_duration"
    MAXIMIZE_QUALITY = "maximize_quality"
    BALANCE_COST_TIME = "balance_cost_time"
    MAXIMIZE_UTILIZATION = "maximize_utilization"
    MINIMIZE_IDLE_TIME = "minimize_idle_time"


class WorkingHours(BaseModel):
    """Daily working window; working_days use Python weekday numbers (0=Monday)."""
    model_config = ConfigDict(extra="ignore")

    start_hour: int = Field(8, ge=0, le=23)
    end_hour: int = Field(16, ge=1, le=24)
    working_days: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])

    @model_validator(mode="after")
    def _validate_window(self) -> "WorkingHours":
        if self.end_hour <= self.start_hour:
            raise ValueError(
                f"working_hours.end_hour ({self.end_hour}) must be after start_hour ({self.start_hour})"
            )
        if not self.working_days:
            raise ValueError("working_hours.working_days must not be empty")
        bad = [d for d in self.working_days if d < 0 or d > 6]
        if bad:
            raise ValueError(f"working_hours.working_days must be within 0-6, got {bad}")
        self.working_days = sorted(set(self.working_days))
        return self

    @property
    def hours_per_day(self) -> float:
        return float(self.end_hour - self.start_hour)


class ConstraintSet(BaseModel):
    model_config = ConfigDict(extra="ignore")

    budget_limit: Optional[float] = Field(None, gt=0)
    deadline: Optional[datetime] = None
    max_resources_per_task: int = Field(1, ge=1)
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    required_skills: List[str] = Field(default_factory=list)  # applied to every task
    safety_requirements: List[str] = Field(default_factory=list)  # certifications required on every task
    mandatory_resources: List[str] = Field(default_factory=list)
    excluded_resources: List[str] = Field(default_factory=list)


class Preferences(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cost_weight: float = Field(0.5, ge=0, le=1)
    time_weight: float = Field(0.5, ge=0, le=1)
    quality_weight: float = Field(0.5, ge=0, le=1)

    allow_overtime: bool = False
    prefer_local: bool = False
    prefer_certified: bool = False


class TimeHorizon(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _validate_horizon(self) -> "TimeHorizon":
        if self.end <= self.start:
            raise ValueError(
                f"time_horizon.end ({self.end.isoformat()}) must be after time_horizon.start ({self.start.isoformat()})"
            )
        return self


class ResourceFilter(BaseModel):
    """Selector handed to ResourceRepository.get_resources; empty lists match everything."""
    model_config = ConfigDict(extra="ignore")

    resource_types: List[ResourceType] = Field(default_factory=list)
    resource_ids: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)


class GeneticParameters(BaseModel):
    """Per-request overrides of the genetic optimizer defaults (unset => settings)."""
    model_config = ConfigDict(extra="ignore")

    population_size: Optional[int] = Field(None, ge=2)
    max_generations: Optional[int] = Field(None, ge=1)
    tournament_size: Optional[int] = Field(None, ge=1)
    crossover_rate: Optional[float] = Field(None, ge=0, le=1)
    mutation_rate: Optional[float] = Field(None, ge=0, le=1)
    elitism_rate: Optional[float] = Field(None, ge=0, le=1)
    convergence_threshold: Optional[float] = Field(None, ge=0)
    fitness_workers: Optional[int] = Field(None, ge=1)


class OptimizationRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # no ":" (recommendation id separator), no "/" (URL path segment)
    request_id: str = Field(..., min_length=1, pattern=r"^[^:/\s]+$")
    project_ids: List[str]
    resource_filter: ResourceFilter = Field(default_factory=ResourceFilter)
    goal: OptimizationGoal = OptimizationGoal.BALANCE_COST_TIME
    constraints: ConstraintSet = Field(default_factory=ConstraintSet)
    preferences: Preferences = Field(default_factory=Preferences)
    time_horizon: TimeHorizon

    requested_by: Optional[str] = None
    requested_at: Optional[datetime] = None

    genetic: GeneticParameters = Field(default_factory=GeneticParameters)
    random_seed: Optional[int] = None
    timeout_seconds: Optional[float] = Field(None, gt=0)

    @field_validator("project_ids")
    @classmethod
    def _validate_project_ids(cls, v: List[str]) -> List[str]:
        cleaned = [str(p).strip() for p in v if str(p).strip()]
        if not cleaned:
            raise ValueError("project_ids must contain at least one project id")
        return cleaned


__all__ = [
    "OptimizationGoal",
    "WorkingHours",
    "ConstraintSet",
    "Preferences",
    "TimeHorizon",
    "ResourceFilter",
    "GeneticParameters",
    "OptimizationRequest",
]
