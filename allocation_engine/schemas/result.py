# allocation_engine/schemas/result.py
"""
OptimizationResult and its parts.

Transport-agnostic: every model round-trips through model_dump(mode="json")
so the same object is returned over HTTP and persisted by the ResultStore.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Literal

from allocation_engine.schemas.domain import ResourceType


Severity = Literal["low", "medium", "high", "critical"]
WarningCategory = Literal[
    "resource_conflict",
    "budget_overrun",
    "schedule_delay",
    "quality_risk",
    "safety_concern",
    "unassigned_task",
]
RecommendationStatus = Literal["pending", "accepted", "rejected"]
ResultStatus = Literal["success", "partial"]
RiskLevel = Literal["low", "medium", "high", "critical"]

RECOMMENDATION_ID_PREFIX = "rec:"


def recommendation_id(request_id: str, task_id: str) -> str:
    """rec:<request_id>:<task_id>; request ids never contain ":" so the owner is recoverable."""
    return f"{RECOMMENDATION_ID_PREFIX}{request_id}:{task_id}"


def owning_request_id(recommendation_id: str) -> Optional[str]:
    if not recommendation_id.startswith(RECOMMENDATION_ID_PREFIX):
        return None
    request_id, sep, task_id = recommendation_id[len(RECOMMENDATION_ID_PREFIX):].partition(":")
    if not (request_id and sep and task_id):
        return None
    return request_id


class Allocation(BaseModel):
    """The atomic gene: one task on one resource for a capacity fraction over [start, end)."""
    model_config = ConfigDict(extra="ignore")

    task_id: str
    resource_id: str
    resource_type: ResourceType
    allocated_fraction: float = Field(..., gt=0, le=1)
    start: datetime
    end: datetime
    start_offset_hours: float
    end_offset_hours: float
    duration_hours: float
    estimated_cost: float


class TaskSchedule(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task_id: str
    task_name: str
    assigned_resource_id: Optional[str] = None
    start: datetime
    end: datetime
    duration_hours: float
    earliest_start_hours: float
    earliest_finish_hours: float
    latest_start_hours: float
    latest_finish_hours: float
    slack_hours: float
    is_critical: bool
    predecessors: List[str] = Field(default_factory=list)
    successors: List[str] = Field(default_factory=list)
    estimated_cost: float = 0.0
    risk_level: RiskLevel = "low"


class UtilizationBucket(BaseModel):
    bucket_index: int
    day: date
    load: float  # peak sum of concurrent capacity fractions
    allocated_hours: float
    available: bool
    task_ids: List[str] = Field(default_factory=list)


class ResourceUtilization(BaseModel):
    model_config = ConfigDict(extra="ignore")

    resource_id: str
    resource_name: str
    resource_type: ResourceType
    allocated_hours: float
    available_hours: float
    utilization_pct: float
    idle_hours: float
    overtime_hours: float
    timeline: List[UtilizationBucket] = Field(default_factory=list)


class Milestone(BaseModel):
    milestone_id: str
    name: str
    target_date: datetime
    offset_hours: float
    dependent_task_ids: List[str] = Field(default_factory=list)


class SchedulingPlan(BaseModel):
    model_config = ConfigDict(extra="ignore")

    plan_id: str
    start: datetime
    end: datetime
    total_duration_hours: float
    total_cost: float
    tasks: List[TaskSchedule] = Field(default_factory=list)
    critical_path: List[str] = Field(default_factory=list)
    resource_utilization: List[ResourceUtilization] = Field(default_factory=list)
    milestones: List[Milestone] = Field(default_factory=list)


class PerformanceMetrics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    baseline_cost: float
    optimized_cost: float
    cost_savings: float
    cost_savings_pct: float
    baseline_duration_hours: float
    optimized_duration_hours: float
    time_savings_hours: float
    time_savings_pct: float
    utilization_avg: float
    baseline_utilization_avg: float
    utilization_improvement: float
    quality_score_avg: float
    confidence: float
    best_fitness: float
    generations_run: int
    converged: bool
    fitness_history: List[float] = Field(default_factory=list)


class Recommendation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    recommendation_id: str
    task_id: str
    task_name: str
    resource_id: str
    resource_name: str
    resource_type: ResourceType
    allocated_fraction: float
    start: datetime
    end: datetime
    estimated_cost: float
    estimated_duration_hours: float
    match_score: float  # 0-1
    confidence: float  # 0-1
    quality_score: float  # 0-100
    risk_score: float  # 0-100
    alternatives: List[str] = Field(default_factory=list)
    reasoning: str = ""
    status: RecommendationStatus = "pending"


class OptimizationWarning(BaseModel):
    model_config = ConfigDict(extra="ignore")

    warning_id: str
    severity: Severity
    category: WarningCategory
    message: str
    affected_task_ids: List[str] = Field(default_factory=list)
    affected_resource_ids: List[str] = Field(default_factory=list)
    recommended_action: str = ""
    cost_impact: Optional[float] = None
    time_impact_hours: Optional[float] = None


class Bottleneck(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bottleneck_id: str
    resource_type: ResourceType
    period_start: datetime
    period_end: datetime
    demand_hours: float
    capacity_hours: float
    shortfall_pct: float  # (demand - capacity) / capacity, as a percentage
    severity: Severity
    estimated_delay_hours: float
    estimated_cost_impact: float
    affected_task_ids: List[str] = Field(default_factory=list)
    affected_resource_ids: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class Scenario(BaseModel):
    model_config = ConfigDict(extra="ignore")

    scenario_id: str
    label: str
    description: str
    baseline_cost: float
    baseline_duration_hours: float
    cost_delta: float
    duration_delta_hours: float
    cost_delta_pct: float
    duration_delta_pct: float
    total_cost: float
    total_duration_hours: float
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    allocations: List[Allocation] = Field(default_factory=list)
    recommendation_score: float = 0.0


class OptimizationResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    result_id: str
    request_id: str
    status: ResultStatus
    feasible: bool
    unsatisfiable_task_ids: List[str] = Field(default_factory=list)
    completed: bool = True
    persisted: bool = False

    allocations: List[Allocation] = Field(default_factory=list)
    scheduling_plan: SchedulingPlan
    performance_metrics: PerformanceMetrics
    recommendations: List[Recommendation] = Field(default_factory=list)
    warnings: List[OptimizationWarning] = Field(default_factory=list)
    bottlenecks: List[Bottleneck] = Field(default_factory=list)
    scenarios: List[Scenario] = Field(default_factory=list)

    confidence: float = 0.0
    computed_at: Optional[datetime] = None
    computation_time_ms: Optional[int] = None

    def find_recommendation(self, recommendation_id: str) -> Optional[Recommendation]:
        for rec in self.recommendations:
            if rec.recommendation_id == recommendation_id:
                return rec
        return None


__all__ = [
    "recommendation_id",
    "owning_request_id",
    "Allocation",
    "TaskSchedule",
    "UtilizationBucket",
    "ResourceUtilization",
    "Milestone",
    "SchedulingPlan",
    "PerformanceMetrics",
    "Recommendation",
    "OptimizationWarning",
    "Bottleneck",
    "Scenario",
    "OptimizationResult",
]
