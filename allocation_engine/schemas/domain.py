# allocation_engine/schemas/domain.py
"""
Immutable input records for one optimization run.

Tasks and resources are pulled from the record-keeping collaborators and
frozen for the duration of a run; the optimizer never mutates them.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ResourceType(str, Enum):
    LABOR = "labor"
    EQUIPMENT = "equipment"
    MATERIAL = "material"


class SkillLevel(BaseModel):
    """A capability tag with its proficiency (1=beginner, 5=expert)."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    skill: str = Field(..., min_length=1)
    proficiency: int = Field(3, ge=1, le=5)
    years_experience: float = Field(0.0, ge=0)


class TimeWindow(BaseModel):
    """Half-open availability window [start, end)."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _validate_order(self) -> "TimeWindow":
        if self.end <= self.start:
            raise ValueError(f"window end {self.end.isoformat()} must be after start {self.start.isoformat()}")
        return self

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and start < self.end


class Task(BaseModel):
    """
    A unit of work to be staffed.

    base_duration_hours is measured in working hours; the scoring model scales
    it per assigned resource.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    task_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    project_id: Optional[str] = None

    required_skills: List[str] = Field(default_factory=list)
    min_proficiency: int = Field(1, ge=1, le=5)
    required_certifications: List[str] = Field(default_factory=list)
    resource_type: ResourceType = ResourceType.LABOR

    base_duration_hours: float = Field(..., gt=0)
    earliest_start: Optional[datetime] = None
    deadline: Optional[datetime] = None
    dependencies: List[str] = Field(default_factory=list)  # predecessor task ids

    budget_weight: float = Field(1.0, ge=0)
    complexity: int = Field(5, ge=1, le=10)
    site_accessibility: int = Field(3, ge=1, le=5)

    @property
    def display_name(self) -> str:
        return self.name or self.task_id


class Resource(BaseModel):
    """A labor, equipment or material resource with a cost rate and daily capacity."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    resource_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    resource_type: ResourceType = ResourceType.LABOR

    capabilities: List[SkillLevel] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)

    cost_rate: float = Field(..., ge=0)  # per allocated working hour
    capacity_per_day: float = Field(8.0, gt=0)  # hours (labor/equipment) or units (material)
    availability: List[TimeWindow] = Field(default_factory=list)  # empty => always available

    condition: Optional[int] = Field(None, ge=1, le=5)  # equipment only
    historical_delay_rate: float = Field(0.0, ge=0, le=1)
    historical_overrun_rate: float = Field(0.0, ge=0, le=1)

    is_local: bool = True
    location: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.resource_id

    def proficiency(self, skill: str) -> int:
        """Proficiency for a skill tag, 0 when the resource lacks it."""
        for cap in self.capabilities:
            if cap.skill == skill:
                return cap.proficiency
        return 0

    def experience(self, skill: str) -> float:
        for cap in self.capabilities:
            if cap.skill == skill:
                return cap.years_experience
        return 0.0

    def has_skills(self, skills: List[str], min_proficiency: int = 1) -> bool:
        return all(self.proficiency(s) >= min_proficiency for s in skills)

    def missing_certifications(self, required: List[str]) -> List[str]:
        held = set(self.certifications)
        return [c for c in required if c not in held]


__all__ = [
    "ResourceType",
    "SkillLevel",
    "TimeWindow",
    "Task",
    "Resource",
]
