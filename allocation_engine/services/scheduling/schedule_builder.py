# allocation_engine/services/scheduling/schedule_builder.py
"""
Schedule Builder: decoded placements -> SchedulingPlan.

Forward pass: ES = max(placement start, EF of every predecessor); the placement
start already accounts for release dates, resource availability and capacity,
so it acts as the task's release time. EF = ES + duration.

Backward pass from the project end: LF = min(LS of successors) (project end
for sinks), LS = LF - duration. slack = LS - ES; slack == 0 marks the
critical path.

The utilization timeline is built per resource per working-day bucket from
the same placements.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from allocation_engine.schemas.result import (
    Allocation,
    Milestone,
    ResourceUtilization,
    SchedulingPlan,
    TaskSchedule,
    UtilizationBucket,
)
from allocation_engine.services.optimization.fitness import EPS, Evaluation, Placement
from allocation_engine.services.optimization.problem_builder import AllocationProblem

logger = logging.getLogger(__name__)

SLACK_TOLERANCE = 1e-6
ROUND = 4


@dataclass(frozen=True)
class NetworkTimes:
    es: float
    ef: float
    ls: float
    lf: float

    @property
    def slack(self) -> float:
        return self.ls - self.es


def risk_level(success_probability: Optional[float]) -> str:
    if success_probability is None:
        return "critical"
    if success_probability >= 0.8:
        return "low"
    if success_probability >= 0.6:
        return "medium"
    if success_probability >= 0.4:
        return "high"
    return "critical"


def compute_network(problem: AllocationProblem, placements: Sequence[Placement]) -> List[NetworkTimes]:
    n = problem.n_tasks
    es = [0.0] * n
    ef = [0.0] * n
    for t in problem.topo_order:
        start = placements[t].start
        for p in problem.predecessors[t]:
            start = max(start, ef[p])
        es[t] = start
        ef[t] = start + placements[t].duration

    project_end = max(ef) if ef else 0.0
    ls = [0.0] * n
    lf = [0.0] * n
    for t in reversed(problem.topo_order):
        succ = problem.successors[t]
        finish = min((ls[s] for s in succ), default=project_end)
        lf[t] = finish
        ls[t] = finish - placements[t].duration

    return [NetworkTimes(es[t], ef[t], ls[t], lf[t]) for t in range(n)]


def build_allocations(problem: AllocationProblem, placements: Sequence[Placement]) -> List[Allocation]:
    """One Allocation per staffed task, in task input order."""
    calendar = problem.calendar
    out: List[Allocation] = []
    for pl in placements:
        if not pl.assigned:
            continue
        resource = problem.resources[pl.resource_idx]
        out.append(
            Allocation(
                task_id=problem.tasks[pl.task_idx].task_id,
                resource_id=resource.resource_id,
                resource_type=resource.resource_type,
                allocated_fraction=pl.fraction,
                start=calendar.to_datetime(pl.start),
                end=calendar.to_datetime(pl.end, is_end=True),
                start_offset_hours=round(pl.start, ROUND),
                end_offset_hours=round(pl.end, ROUND),
                duration_hours=round(pl.duration, ROUND),
                estimated_cost=round(pl.cost, 2),
            )
        )
    return out


class ScheduleBuilder:
    def __init__(self, problem: AllocationProblem) -> None:
        self.problem = problem

    def build(self, evaluation: Evaluation, plan_id: str) -> SchedulingPlan:
        problem = self.problem
        calendar = problem.calendar
        placements = evaluation.placements
        times = compute_network(problem, placements)

        project_end = max((nt.ef for nt in times), default=0.0)
        project_start = min((nt.es for nt in times), default=0.0)

        task_rows: List[TaskSchedule] = []
        for t, task in enumerate(problem.tasks):
            pl = placements[t]
            nt = times[t]
            slack = max(0.0, nt.slack)
            success = problem.predictions[(t, pl.resource_idx)].success_probability if pl.assigned else None
            task_rows.append(
                TaskSchedule(
                    task_id=task.task_id,
                    task_name=task.display_name,
                    assigned_resource_id=problem.resources[pl.resource_idx].resource_id if pl.assigned else None,
                    start=calendar.to_datetime(nt.es),
                    end=calendar.to_datetime(nt.ef, is_end=True),
                    duration_hours=round(pl.duration, ROUND),
                    earliest_start_hours=round(nt.es, ROUND),
                    earliest_finish_hours=round(nt.ef, ROUND),
                    latest_start_hours=round(nt.ls, ROUND),
                    latest_finish_hours=round(nt.lf, ROUND),
                    slack_hours=0.0 if slack <= SLACK_TOLERANCE else round(slack, ROUND),
                    is_critical=slack <= SLACK_TOLERANCE,
                    predecessors=[problem.tasks[p].task_id for p in problem.predecessors[t]],
                    successors=[problem.tasks[s].task_id for s in problem.successors[t]],
                    estimated_cost=round(pl.cost, 2),
                    risk_level=risk_level(success),  # type: ignore[arg-type]
                )
            )

        critical = [t for t in problem.topo_order if times[t].slack <= SLACK_TOLERANCE]
        critical.sort(key=lambda t: (times[t].es, problem.topo_order.index(t)))
        critical_path = [problem.tasks[t].task_id for t in critical]

        plan = SchedulingPlan(
            plan_id=plan_id,
            start=calendar.to_datetime(project_start),
            end=calendar.to_datetime(project_end, is_end=True),
            total_duration_hours=round(project_end - project_start, ROUND),
            total_cost=round(evaluation.total_cost, 2),
            tasks=task_rows,
            critical_path=critical_path,
            resource_utilization=self._utilization(placements, project_end),
            milestones=self._milestones(times, project_end, critical_path),
        )
        logger.debug(
            "schedule.built",
            extra={"request_id": problem.request_id, "count": len(task_rows), "total": len(critical_path)},
        )
        return plan

    # -------------------------
    # Utilization timeline
    # -------------------------

    def _utilization(self, placements: Sequence[Placement], project_end: float) -> List[ResourceUtilization]:
        problem = self.problem
        calendar = problem.calendar
        hpd = calendar.hours_per_day
        last_bucket = calendar.bucket_of_offset(project_end - EPS) if project_end > EPS else -1

        by_resource: Dict[int, List[Placement]] = {}
        for pl in placements:
            if pl.assigned:
                by_resource.setdefault(pl.resource_idx, []).append(pl)

        out: List[ResourceUtilization] = []
        for r, resource in enumerate(problem.resources):
            mine = by_resource.get(r, [])
            capacity = problem.bucket_capacity_hours[r]
            timeline: List[UtilizationBucket] = []
            allocated_total = 0.0
            available_total = 0.0
            overtime_total = 0.0

            for bucket in range(last_bucket + 1):
                b_start, b_end = bucket * hpd, (bucket + 1) * hpd
                active = [pl for pl in mine if pl.start < b_end - EPS and b_start < pl.end - EPS]
                hours = sum((min(pl.end, b_end) - max(pl.start, b_start)) * pl.fraction for pl in active)
                available = problem.is_available(r, bucket)
                bucket_capacity = capacity if available else 0.0
                allocated_total += hours
                available_total += bucket_capacity
                overtime_total += max(0.0, hours - bucket_capacity)
                timeline.append(
                    UtilizationBucket(
                        bucket_index=bucket,
                        day=calendar.day_for_bucket(bucket),
                        load=round(self._peak_load(active, b_start, b_end), ROUND),
                        allocated_hours=round(hours, ROUND),
                        available=available,
                        task_ids=[problem.tasks[pl.task_idx].task_id for pl in active],
                    )
                )

            pct = min(allocated_total / available_total, 1.0) * 100.0 if available_total > EPS else 0.0
            out.append(
                ResourceUtilization(
                    resource_id=resource.resource_id,
                    resource_name=resource.display_name,
                    resource_type=resource.resource_type,
                    allocated_hours=round(allocated_total, ROUND),
                    available_hours=round(available_total, ROUND),
                    utilization_pct=round(pct, 2),
                    idle_hours=round(max(0.0, available_total - allocated_total), ROUND),
                    overtime_hours=round(overtime_total, ROUND),
                    timeline=timeline,
                )
            )
        return out

    @staticmethod
    def _peak_load(active: Sequence[Placement], start: float, end: float) -> float:
        points = [start] + [pl.start for pl in active if start < pl.start < end]
        peak = 0.0
        for p in points:
            load = sum(pl.fraction for pl in active if pl.start <= p + EPS and p < pl.end - EPS)
            peak = max(peak, load)
        return peak

    # -------------------------
    # Milestones
    # -------------------------

    def _milestones(self, times: List[NetworkTimes], project_end: float, critical_path: List[str]) -> List[Milestone]:
        problem = self.problem
        calendar = problem.calendar
        milestones: List[Milestone] = []
        sinks = [t for t in problem.topo_order if not problem.successors[t]]
        for t in sinks:
            task = problem.tasks[t]
            milestones.append(
                Milestone(
                    milestone_id=f"ms_{problem.request_id}_{task.task_id}",
                    name=f"{task.display_name} complete",
                    target_date=calendar.to_datetime(times[t].ef, is_end=True),
                    offset_hours=round(times[t].ef, ROUND),
                    dependent_task_ids=[task.task_id],
                )
            )
        milestones.sort(key=lambda m: (m.offset_hours, m.milestone_id))
        milestones.append(
            Milestone(
                milestone_id=f"ms_{problem.request_id}_completion",
                name="Project completion",
                target_date=calendar.to_datetime(project_end, is_end=True),
                offset_hours=round(project_end, ROUND),
                dependent_task_ids=list(critical_path),
            )
        )
        return milestones


__all__ = [
    "NetworkTimes",
    "ScheduleBuilder",
    "build_allocations",
    "compute_network",
    "risk_level",
]
