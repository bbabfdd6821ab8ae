# allocation_engine/services/analysis/risk_analyzer.py
"""
Risk & Bottleneck Analyzer.

Warnings (one OptimizationWarning each):
- budget: projected cost >= BUDGET_WARNING_RATIO * budget (high), above budget (critical)
- schedule_delay: a task finishes after its deadline
- resource_conflict: a resource carries more than 100% in some period
- safety_concern: a task is mapped to a resource lacking a required certification
- unassigned_task: no qualified resource exists for a task
- quality_risk: predicted success probability below LOW_SUCCESS_PROBABILITY
- resource_conflict (low): a mandatory resource is left unused

Bottlenecks are computed per resource type per working-day bucket; contiguous
short buckets are merged into one period.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from allocation_engine.config import Settings
from allocation_engine.schemas.domain import ResourceType
from allocation_engine.schemas.request import OptimizationRequest
from allocation_engine.schemas.result import Bottleneck, OptimizationWarning, SchedulingPlan
from allocation_engine.services.optimization.fitness import EPS, Evaluation, Placement
from allocation_engine.services.optimization.problem_builder import AllocationProblem

logger = logging.getLogger(__name__)


def bottleneck_severity(shortfall_pct: float) -> str:
    if shortfall_pct < 10.0:
        return "low"
    if shortfall_pct < 25.0:
        return "medium"
    if shortfall_pct < 50.0:
        return "high"
    return "critical"


@dataclass(frozen=True)
class _TypeBucket:
    bucket: int
    demand: float
    capacity: float
    task_ids: Tuple[str, ...]
    resource_ids: Tuple[str, ...]

    @property
    def short(self) -> bool:
        return self.demand > self.capacity + EPS


class RiskAnalyzer:
    def __init__(self, problem: AllocationProblem, request: OptimizationRequest, settings: Settings) -> None:
        self.problem = problem
        self.request = request
        self.settings = settings
        self._warnings: List[OptimizationWarning] = []

    # -------------------------
    # Warnings
    # -------------------------

    def warnings(self, evaluation: Evaluation, plan: SchedulingPlan) -> List[OptimizationWarning]:
        self._warnings = []
        self._check_budget(evaluation)
        self._check_deadlines(evaluation)
        self._check_over_allocation(evaluation, plan)
        self._check_safety(evaluation)
        self._check_unassigned(evaluation)
        self._check_quality(evaluation)
        self._check_mandatory(evaluation)
        logger.info(
            "analysis.warnings",
            extra={"request_id": self.problem.request_id, "count": len(self._warnings)},
        )
        return list(self._warnings)

    def _add(self, **kwargs) -> None:
        warning_id = f"warn_{self.problem.request_id}_{len(self._warnings) + 1:03d}"
        self._warnings.append(OptimizationWarning(warning_id=warning_id, **kwargs))

    def _task_id(self, t: int) -> str:
        return self.problem.tasks[t].task_id

    def _check_budget(self, evaluation: Evaluation) -> None:
        budget = self.problem.budget_limit
        if budget is None:
            return
        cost = evaluation.total_cost
        if cost > budget + EPS:
            self._add(
                severity="critical",
                category="budget_overrun",
                message=f"Projected cost {cost:,.2f} exceeds the budget limit {budget:,.2f}",
                recommended_action="Reduce scope, lower allocation fractions or raise the budget limit",
                cost_impact=round(cost - budget, 2),
            )
        elif cost >= self.settings.BUDGET_WARNING_RATIO * budget:
            self._add(
                severity="high",
                category="budget_overrun",
                message=f"Projected cost {cost:,.2f} is {cost / budget:.0%} of the budget limit {budget:,.2f}",
                recommended_action="Review cost-heavy allocations before committing",
                cost_impact=0.0,
            )

    def _check_deadlines(self, evaluation: Evaluation) -> None:
        for pl in evaluation.placements:
            deadline = self.problem.deadline_offsets[pl.task_idx]
            if deadline is None or pl.end <= deadline + EPS:
                continue
            late = pl.end - deadline
            self._add(
                severity="high",
                category="schedule_delay",
                message=f"Task {self._task_id(pl.task_idx)} finishes {late:.1f} working hours after its deadline",
                affected_task_ids=[self._task_id(pl.task_idx)],
                affected_resource_ids=[self.problem.resources[pl.resource_idx].resource_id] if pl.assigned else [],
                recommended_action="Assign a faster resource or relax the deadline",
                time_impact_hours=round(late, 2),
            )

    def _check_over_allocation(self, evaluation: Evaluation, plan: SchedulingPlan) -> None:
        allow = self.problem.allow_overtime
        for ru in plan.resource_utilization:
            r = self.problem.resource_index(ru.resource_id)
            day_capacity = self.problem.bucket_capacity_hours[r] if r is not None else 0.0
            peak = [b for b in ru.timeline if b.load > 1.0 + 1e-6]
            over_hours = [
                b for b in ru.timeline
                if b.allocated_hours > (day_capacity if b.available else 0.0) + 1e-6
            ]
            failed = [
                pl for pl in evaluation.placements
                if pl.placement_failed and self.problem.resources[pl.resource_idx].resource_id == ru.resource_id
            ]
            if not peak and not over_hours and not failed:
                continue
            task_ids = sorted(
                {tid for b in peak + over_hours for tid in b.task_ids}
                | {self._task_id(pl.task_idx) for pl in failed}
            )
            if peak:
                detail = f" (peak load {max(b.load for b in peak):.0%})"
            elif over_hours:
                detail = f" ({ru.overtime_hours:.1f} hours beyond {day_capacity:.1f} h/day capacity)"
            else:
                detail = " (no conflict-free slot found)"
            self._add(
                severity="medium" if allow else "high",
                category="resource_conflict",
                message=f"Resource {ru.resource_name} is over-allocated" + detail,
                affected_task_ids=task_ids,
                affected_resource_ids=[ru.resource_id],
                recommended_action="Stagger the affected tasks or add capacity of the same type",
                cost_impact=round(ru.overtime_hours * self._rate(ru.resource_id) * self.settings.OVERTIME_COST_MULTIPLIER, 2),
            )

    def _rate(self, resource_id: str) -> float:
        idx = self.problem.resource_index(resource_id)
        return self.problem.resources[idx].cost_rate if idx is not None else 0.0

    def _check_safety(self, evaluation: Evaluation) -> None:
        safety = list(self.request.constraints.safety_requirements)
        for pl in evaluation.placements:
            if not pl.assigned:
                continue
            task = self.problem.tasks[pl.task_idx]
            resource = self.problem.resources[pl.resource_idx]
            required = list(dict.fromkeys(list(task.required_certifications) + safety))
            missing = resource.missing_certifications(required)
            if not missing:
                continue
            self._add(
                severity="critical",
                category="safety_concern",
                message=f"{resource.display_name} lacks certification(s) {', '.join(missing)} required by task {task.task_id}",
                affected_task_ids=[task.task_id],
                affected_resource_ids=[resource.resource_id],
                recommended_action="Assign a certified resource or schedule certification before the task starts",
            )

    def _check_unassigned(self, evaluation: Evaluation) -> None:
        for pl in evaluation.placements:
            if pl.assigned:
                continue
            task = self.problem.tasks[pl.task_idx]
            self._add(
                severity="critical",
                category="unassigned_task",
                message=f"No qualified resource for task {task.task_id}",
                affected_task_ids=[task.task_id],
                recommended_action="Hire, train or subcontract a resource with the required skills",
                time_impact_hours=round(pl.duration, 2),
            )

    def _check_quality(self, evaluation: Evaluation) -> None:
        threshold = self.settings.LOW_SUCCESS_PROBABILITY
        for pl in evaluation.placements:
            if not pl.assigned:
                continue
            success = self.problem.predictions[(pl.task_idx, pl.resource_idx)].success_probability
            if success >= threshold:
                continue
            self._add(
                severity="medium",
                category="quality_risk",
                message=f"Low predicted success ({success:.0%}) for task {self._task_id(pl.task_idx)}",
                affected_task_ids=[self._task_id(pl.task_idx)],
                affected_resource_ids=[self.problem.resources[pl.resource_idx].resource_id],
                recommended_action="Pair with a more experienced resource or add review checkpoints",
            )

    def _check_mandatory(self, evaluation: Evaluation) -> None:
        used = {self.problem.resources[pl.resource_idx].resource_id for pl in evaluation.placements if pl.assigned}
        known = {r.resource_id for r in self.problem.resources}
        for rid in self.request.constraints.mandatory_resources:
            if rid in used:
                continue
            self._add(
                severity="low" if rid in known else "medium",
                category="resource_conflict",
                message=(
                    f"Mandatory resource {rid} is not used by the plan"
                    if rid in known
                    else f"Mandatory resource {rid} is not in the resource pool"
                ),
                affected_resource_ids=[rid],
                recommended_action="Check the resource's skills and availability against the task set",
            )

    # -------------------------
    # Bottlenecks
    # -------------------------

    def bottlenecks(self, evaluation: Evaluation) -> List[Bottleneck]:
        problem = self.problem
        makespan = evaluation.makespan
        if makespan <= EPS:
            return []
        last_bucket = problem.calendar.bucket_of_offset(makespan - EPS)

        types = sorted(
            {r.resource_type for r in problem.resources} | {problem.tasks[t].resource_type for t in problem.unsatisfiable},
            key=lambda rt: rt.value,
        )
        out: List[Bottleneck] = []
        for rtype in types:
            series = [self._type_bucket(evaluation.placements, rtype, b) for b in range(max(problem.max_bucket, last_bucket) + 1)]
            b = 0
            while b <= last_bucket:
                if not series[b].short:
                    b += 1
                    continue
                run_start = b
                while b <= last_bucket and series[b].short:
                    b += 1
                out.append(self._bottleneck(rtype, series, run_start, b - 1, len(out) + 1))

        logger.info(
            "analysis.bottlenecks",
            extra={"request_id": problem.request_id, "count": len(out)},
        )
        return out

    def _type_bucket(self, placements: Sequence[Placement], rtype: ResourceType, bucket: int) -> _TypeBucket:
        problem = self.problem
        hpd = problem.hours_per_day
        b_start, b_end = bucket * hpd, (bucket + 1) * hpd

        capacity = sum(
            problem.bucket_capacity_hours[r]
            for r, res in enumerate(problem.resources)
            if res.resource_type == rtype and problem.is_available(r, bucket)
        )
        demand = 0.0
        task_ids: List[str] = []
        resource_ids: List[str] = []
        for pl in placements:
            task = problem.tasks[pl.task_idx]
            if pl.assigned:
                if problem.resources[pl.resource_idx].resource_type != rtype:
                    continue
            elif task.resource_type != rtype:
                continue
            overlap = min(pl.end, b_end) - max(pl.start, b_start)
            if overlap <= EPS:
                continue
            demand += overlap * pl.fraction
            task_ids.append(task.task_id)
            if pl.assigned:
                rid = problem.resources[pl.resource_idx].resource_id
                if rid not in resource_ids:
                    resource_ids.append(rid)
        return _TypeBucket(bucket, demand, capacity, tuple(task_ids), tuple(resource_ids))

    def _bottleneck(self, rtype: ResourceType, series: List[_TypeBucket], first: int, last: int, seq: int) -> Bottleneck:
        problem = self.problem
        calendar = problem.calendar
        hpd = problem.hours_per_day
        run = series[first : last + 1]
        demand = sum(x.demand for x in run)
        capacity = sum(x.capacity for x in run)
        excess = demand - capacity
        shortfall_pct = 100.0 if capacity <= EPS else excess / capacity * 100.0

        # Delay: working hours until spare capacity after the period absorbs the excess.
        delay: Optional[float] = None
        spare_seen = 0.0
        for x in series[last + 1 :]:
            spare_seen += max(0.0, x.capacity - x.demand)
            if spare_seen + EPS >= excess:
                delay = (x.bucket - last) * hpd
                break
        if delay is None:
            delay = excess

        rates = [r.cost_rate for r in problem.resources if r.resource_type == rtype]
        avg_rate = sum(rates) / len(rates) if rates else 0.0
        cost_impact = excess * avg_rate * self.settings.OVERTIME_COST_MULTIPLIER

        severity = bottleneck_severity(shortfall_pct)
        task_ids = list(dict.fromkeys(tid for x in run for tid in x.task_ids))
        resource_ids = list(dict.fromkeys(rid for x in run for rid in x.resource_ids))

        recommendations = [f"Add {excess:.1f} hours of {rtype.value} capacity during this period"]
        if capacity <= EPS:
            recommendations.append(f"No {rtype.value} resource is available in this period; source one externally")
        if severity in ("high", "critical"):
            recommendations.append("Re-sequence non-critical tasks to later periods")
        if not problem.allow_overtime:
            recommendations.append("Consider allowing overtime for the affected resources")

        period_start, _ = calendar.bucket_window(first)
        _, period_end = calendar.bucket_window(last)
        return Bottleneck(
            bottleneck_id=f"bn_{problem.request_id}_{seq:03d}",
            resource_type=rtype,
            period_start=period_start,
            period_end=period_end,
            demand_hours=round(demand, 2),
            capacity_hours=round(capacity, 2),
            shortfall_pct=round(shortfall_pct, 2),
            severity=severity,  # type: ignore[arg-type]
            estimated_delay_hours=round(delay, 2),
            estimated_cost_impact=round(cost_impact, 2),
            affected_task_ids=task_ids,
            affected_resource_ids=resource_ids,
            recommendations=recommendations,
        )


__all__ = ["RiskAnalyzer", "bottleneck_severity"]
