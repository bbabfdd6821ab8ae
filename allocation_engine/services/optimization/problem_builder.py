# allocation_engine/services/optimization/problem_builder.py
"""
Build the immutable, request-scoped AllocationProblem the optimizer searches over.

Everything the fitness workers read is computed here once: qualified candidate
lists, scoring-model predictions and durations per (task, resource), a
topological order of the dependency graph, release/deadline offsets on the
working calendar, and per-resource bucket availability. Nothing in the problem
is mutated after build(), so worker threads share it without locking.
"""
from __future__ import annotations

import heapq
import logging
import math
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from allocation_engine.errors import ValidationError
from allocation_engine.schemas.domain import Resource, Task
from allocation_engine.schemas.request import OptimizationRequest
from allocation_engine.services.features.extractor import ExtractionContext, FeatureExtractor, FeatureVector
from allocation_engine.services.scoring.interfaces import ScorePrediction, ScoringModel
from allocation_engine.utils.calendar import WorkingCalendar

logger = logging.getLogger(__name__)

# Tasks nobody can staff are still laid out (with no resource) at this multiple
# of their base duration so downstream analysis sees their demand.
UNASSIGNED_DURATION_FACTOR = 2.0
FRACTION_STEP = 0.05
UNASSIGNED = -1


@dataclass(frozen=True)
class AllocationProblem:
    request_id: str
    tasks: Tuple[Task, ...]  # input order == gene order
    resources: Tuple[Resource, ...]  # sorted by resource_id
    calendar: WorkingCalendar

    candidates: Tuple[Tuple[int, ...], ...]  # per task: qualified resource indices, ascending id
    features: Dict[Tuple[int, int], FeatureVector]
    predictions: Dict[Tuple[int, int], ScorePrediction]
    durations: Dict[Tuple[int, int], float]  # working hours per (task, resource)

    predecessors: Tuple[Tuple[int, ...], ...]
    successors: Tuple[Tuple[int, ...], ...]
    topo_order: Tuple[int, ...]

    release_offsets: Tuple[float, ...]
    deadline_offsets: Tuple[Optional[float], ...]
    # per resource: available bucket indices, None => always available
    availability: Tuple[Optional[FrozenSet[int]], ...]
    bucket_capacity_hours: Tuple[float, ...]  # per resource, hours per working day
    max_bucket: int

    budget_limit: Optional[float]
    allow_overtime: bool
    fraction_grid: Tuple[float, ...]

    @property
    def n_tasks(self) -> int:
        return len(self.tasks)

    @property
    def hours_per_day(self) -> float:
        return self.calendar.hours_per_day

    @property
    def max_offset(self) -> float:
        return (self.max_bucket + 1) * self.calendar.hours_per_day

    @property
    def unsatisfiable(self) -> Tuple[int, ...]:
        return tuple(t for t, cands in enumerate(self.candidates) if not cands)

    @property
    def unsatisfiable_task_ids(self) -> List[str]:
        return [self.tasks[t].task_id for t in self.unsatisfiable]

    def is_available(self, resource_idx: int, bucket: int) -> bool:
        buckets = self.availability[resource_idx]
        if buckets is None:
            return True
        return bucket in buckets

    def load_limit(self, resource_idx: int) -> float:
        """Largest summed fraction the resource carries at any instant: daily capacity over the working day."""
        if self.allow_overtime:
            return 1.0
        return self.bucket_capacity_hours[resource_idx] / self.calendar.hours_per_day

    def unassigned_duration(self, task_idx: int) -> float:
        return self.tasks[task_idx].base_duration_hours * UNASSIGNED_DURATION_FACTOR

    def resource_index(self, resource_id: str) -> Optional[int]:
        for idx, res in enumerate(self.resources):
            if res.resource_id == resource_id:
                return idx
        return None

    def task_index(self, task_id: str) -> Optional[int]:
        for idx, task in enumerate(self.tasks):
            if task.task_id == task_id:
                return idx
        return None

    def naive_genes(self) -> Tuple[List[int], List[float]]:
        """Baseline assignment: lowest-id qualified resource at full capacity fraction."""
        resource_genes = [cands[0] if cands else UNASSIGNED for cands in self.candidates]
        return resource_genes, [1.0] * self.n_tasks

    def seeded_genes(self) -> Tuple[List[int], List[float]]:
        """Best predicted candidate per task (ties keep the lowest resource id) at full fraction."""
        resource_genes: List[int] = []
        for t, cands in enumerate(self.candidates):
            if not cands:
                resource_genes.append(UNASSIGNED)
                continue
            best = cands[0]
            for r in cands[1:]:
                if self.predictions[(t, r)].success_probability > self.predictions[(t, best)].success_probability:
                    best = r
            resource_genes.append(best)
        return resource_genes, [1.0] * self.n_tasks


def fraction_grid(min_fraction: float) -> Tuple[float, ...]:
    """Allocated-capacity fractions the optimizer may use: min_fraction..1.0 in FRACTION_STEP steps."""
    steps = int(round((1.0 - min_fraction) / FRACTION_STEP))
    grid = [round(1.0 - k * FRACTION_STEP, 2) for k in range(steps + 1)]
    return tuple(sorted(g for g in grid if g > 0))


def topological_order(tasks: Sequence[Task], predecessors: Sequence[Sequence[int]]) -> List[int]:
    """Kahn's algorithm; ready tasks leave in input order. Raises ValidationError on a cycle."""
    n = len(tasks)
    indegree = [len(p) for p in predecessors]
    successors: List[List[int]] = [[] for _ in range(n)]
    for t, preds in enumerate(predecessors):
        for p in preds:
            successors[p].append(t)

    ready = [t for t in range(n) if indegree[t] == 0]
    heapq.heapify(ready)
    order: List[int] = []
    while ready:
        t = heapq.heappop(ready)
        order.append(t)
        for s in successors[t]:
            indegree[s] -= 1
            if indegree[s] == 0:
                heapq.heappush(ready, s)

    if len(order) != n:
        stuck = [tasks[t].task_id for t in range(n) if indegree[t] > 0]
        raise ValidationError(
            f"Task dependency cycle detected among: {', '.join(stuck)}",
            errors=[f"dependency cycle: {tid}" for tid in stuck],
        )
    return order


class ProblemBuilder:
    """Turns a validated request plus collaborator records into an AllocationProblem."""

    def __init__(
        self,
        scoring_model: ScoringModel,
        extractor: Optional[FeatureExtractor] = None,
        min_fraction: float = 0.25,
    ) -> None:
        self.scoring_model = scoring_model
        self.extractor = extractor or FeatureExtractor()
        self.min_fraction = min_fraction

    def build(
        self,
        request: OptimizationRequest,
        tasks: Sequence[Task],
        resources: Sequence[Resource],
    ) -> AllocationProblem:
        self._validate_inputs(tasks, resources)

        constraints = request.constraints
        calendar = WorkingCalendar.from_working_hours(request.time_horizon.start, constraints.working_hours)
        tasks = tuple(tasks)
        excluded = set(constraints.excluded_resources)
        resources = tuple(sorted((r for r in resources if r.resource_id not in excluded), key=lambda r: r.resource_id))
        if not resources:
            raise ValidationError("No resources left after applying excluded_resources")

        context = ExtractionContext(
            reference_date=request.time_horizon.start.date(),
            extra_required_skills=tuple(constraints.required_skills),
        )

        candidates: List[Tuple[int, ...]] = []
        features: Dict[Tuple[int, int], FeatureVector] = {}
        predictions: Dict[Tuple[int, int], ScorePrediction] = {}
        durations: Dict[Tuple[int, int], float] = {}

        for t, task in enumerate(tasks):
            qualified: List[int] = []
            for r, resource in enumerate(resources):
                fv = self.extractor.extract(task, resource, context)
                if fv.is_unqualified:
                    continue
                prediction = self.scoring_model.score(fv)
                features[(t, r)] = fv
                predictions[(t, r)] = prediction
                durations[(t, r)] = task.base_duration_hours * prediction.expected_duration_factor
                qualified.append(r)
            candidates.append(self._apply_preferences(task, qualified, resources, request))
            if not qualified:
                logger.warning(
                    "problem.task_unsatisfiable",
                    extra={"request_id": request.request_id, "task_id": task.task_id},
                )

        predecessors = self._predecessors(tasks, request.request_id)
        order = topological_order(tasks, predecessors)
        successors: List[List[int]] = [[] for _ in tasks]
        for t, preds in enumerate(predecessors):
            for p in preds:
                successors[p].append(t)

        release = tuple(calendar.to_offset(t.earliest_start) if t.earliest_start else 0.0 for t in tasks)
        default_deadline = constraints.deadline or request.time_horizon.end
        deadlines = tuple(calendar.to_offset(t.deadline or default_deadline) for t in tasks)

        hpd = calendar.hours_per_day
        total_work = sum(
            max(durations[(t, r)] for r in cands) if cands else tasks[t].base_duration_hours * UNASSIGNED_DURATION_FACTOR
            for t, cands in enumerate(candidates)
        )
        horizon_buckets = calendar.buckets_until(request.time_horizon.end)
        max_release_bucket = calendar.bucket_of_offset(max(release)) if release else 0
        max_bucket = max(horizon_buckets, max_release_bucket) + int(math.ceil(total_work / hpd)) + 1

        availability = tuple(self._availability(res, calendar, max_bucket) for res in resources)
        capacity = tuple(min(res.capacity_per_day, hpd) for res in resources)

        problem = AllocationProblem(
            request_id=request.request_id,
            tasks=tasks,
            resources=resources,
            calendar=calendar,
            candidates=tuple(candidates),
            features=features,
            predictions=predictions,
            durations=durations,
            predecessors=tuple(tuple(p) for p in predecessors),
            successors=tuple(tuple(s) for s in successors),
            topo_order=tuple(order),
            release_offsets=release,
            deadline_offsets=deadlines,
            availability=availability,
            bucket_capacity_hours=capacity,
            max_bucket=max_bucket,
            budget_limit=constraints.budget_limit,
            allow_overtime=request.preferences.allow_overtime,
            fraction_grid=fraction_grid(self.min_fraction),
        )
        logger.info(
            "problem.built",
            extra={
                "request_id": request.request_id,
                "count": len(tasks),
                "total": len(resources),
                "violations": len(problem.unsatisfiable),
            },
        )
        return problem

    # -------------------------
    # Helpers
    # -------------------------

    def _validate_inputs(self, tasks: Sequence[Task], resources: Sequence[Resource]) -> None:
        errors: List[str] = []
        if not tasks:
            errors.append("task set is empty for the requested projects and time horizon")
        if not resources:
            errors.append("resource set is empty for the requested filter")
        seen: Dict[str, int] = {}
        for task in tasks:
            seen[task.task_id] = seen.get(task.task_id, 0) + 1
        dupes = sorted(tid for tid, n in seen.items() if n > 1)
        if dupes:
            errors.append(f"duplicate task ids: {', '.join(dupes)}")
        res_ids = [r.resource_id for r in resources]
        dup_res = sorted({rid for rid in res_ids if res_ids.count(rid) > 1})
        if dup_res:
            errors.append(f"duplicate resource ids: {', '.join(dup_res)}")
        if errors:
            raise ValidationError("; ".join(errors), errors=errors)

    def _apply_preferences(
        self,
        task: Task,
        qualified: List[int],
        resources: Tuple[Resource, ...],
        request: OptimizationRequest,
    ) -> Tuple[int, ...]:
        """prefer_local / prefer_certified narrow candidates only when some candidate satisfies them."""
        prefs = request.preferences
        pool = list(qualified)
        if prefs.prefer_local:
            local = [r for r in pool if resources[r].is_local]
            if local:
                pool = local
        if prefs.prefer_certified:
            required = list(task.required_certifications) + list(request.constraints.safety_requirements)
            if required:
                certified = [r for r in pool if not resources[r].missing_certifications(required)]
            else:
                certified = [r for r in pool if resources[r].certifications]
            if certified:
                pool = certified
        return tuple(pool)

    def _predecessors(self, tasks: Sequence[Task], request_id: str) -> List[List[int]]:
        index = {task.task_id: i for i, task in enumerate(tasks)}
        predecessors: List[List[int]] = []
        for task in tasks:
            preds: List[int] = []
            for dep in task.dependencies:
                p = index.get(dep)
                if p is None:
                    # Predecessor outside the selected projects; treated as already done.
                    logger.info(
                        "problem.dependency_outside_scope",
                        extra={"request_id": request_id, "task_id": task.task_id, "reason": dep},
                    )
                    continue
                if p not in preds:
                    preds.append(p)
            predecessors.append(sorted(preds))
        return predecessors

    def _availability(self, resource: Resource, calendar: WorkingCalendar, max_bucket: int) -> Optional[FrozenSet[int]]:
        if not resource.availability:
            return None
        available = set()
        for bucket in range(max_bucket + 1):
            start, end = calendar.bucket_window(bucket)
            if any(window.overlaps(start, end) for window in resource.availability):
                available.add(bucket)
        return frozenset(available)


__all__ = [
    "AllocationProblem",
    "ProblemBuilder",
    "UNASSIGNED",
    "UNASSIGNED_DURATION_FACTOR",
    "FRACTION_STEP",
    "fraction_grid",
    "topological_order",
]
