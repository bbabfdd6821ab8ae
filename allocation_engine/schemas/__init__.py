from .domain import Resource, ResourceType, SkillLevel, Task, TimeWindow
from .request import (
    ConstraintSet,
    GeneticParameters,
    OptimizationGoal,
    OptimizationRequest,
    Preferences,
    ResourceFilter,
    TimeHorizon,
    WorkingHours,
)
from .result import (
    Allocation,
    Bottleneck,
    Milestone,
    OptimizationResult,
    OptimizationWarning,
    PerformanceMetrics,
    Recommendation,
    ResourceUtilization,
    Scenario,
    SchedulingPlan,
    TaskSchedule,
    UtilizationBucket,
)
from .run_status import FailedRun, PendingRun

__all__ = [
    "Resource",
    "ResourceType",
    "SkillLevel",
    "Task",
    "TimeWindow",
    "ConstraintSet",
    "GeneticParameters",
    "OptimizationGoal",
    "OptimizationRequest",
    "Preferences",
    "ResourceFilter",
    "TimeHorizon",
    "WorkingHours",
    "Allocation",
    "Bottleneck",
    "Milestone",
    "OptimizationResult",
    "OptimizationWarning",
    "PerformanceMetrics",
    "Recommendation",
    "ResourceUtilization",
    "Scenario",
    "SchedulingPlan",
    "TaskSchedule",
    "UtilizationBucket",
    "FailedRun",
    "PendingRun",
]
