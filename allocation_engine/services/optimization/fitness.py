# allocation_engine/services/optimization/fitness.py
"""
Decode a gene string into a timed schedule and score it.

Genes are two parallel per-task lists (resource index, capacity fraction) in
task input order. decode() is a serial schedule generator: tasks are placed in
topological order at the earliest offset where the dependencies are done, the
resource is available on every working day the task spans and, unless overtime
is allowed, the summed fractions on the resource never exceed its load limit
(capacity_per_day / hours_per_day, at most 1.0). Fraction genes above that
limit are clamped to it, so per-day hours stay within capacity_per_day.

fitness = 0.4 * costScore + 0.4 * utilizationScore - 0.1 * violations + 0.2

Both functions are pure: they read the immutable AllocationProblem only and
may run concurrently on worker threads.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from allocation_engine.services.optimization.problem_builder import UNASSIGNED, AllocationProblem
from allocation_engine.utils.numeric import clamp, mean

EPS = 1e-9

W_COST = 0.4
W_UTILIZATION = 0.4
W_VIOLATION = 0.1
FITNESS_OFFSET = 0.2


@dataclass(frozen=True)
class Placement:
    task_idx: int
    resource_idx: int  # UNASSIGNED when no qualified resource exists
    fraction: float
    start: float  # working-hour offsets
    end: float
    duration: float
    cost: float
    placement_failed: bool = False  # no conflict-free slot; placed at earliest start anyway

    @property
    def assigned(self) -> bool:
        return self.resource_idx != UNASSIGNED


@dataclass(frozen=True)
class Evaluation:
    fitness: float
    violations: int
    total_cost: float
    makespan: float
    utilization_avg: float  # percent
    resource_utilization: Tuple[float, ...]  # percent, per resource
    placements: Tuple[Placement, ...]  # indexed by task
    unassigned: int
    placement_failures: int
    deadline_breaches: int
    budget_breached: bool

    def sort_key(self, index: int = 0) -> Tuple[float, int, float, int]:
        """Higher fitness first, then fewer violations, then lower cost, then lower index."""
        return (-self.fitness, self.violations, self.total_cost, index)


def _busy_intervals(placed: Sequence[Tuple[float, float, float]], start: float, end: float) -> List[Tuple[float, float, float]]:
    return [iv for iv in placed if iv[0] < end - EPS and start < iv[1] - EPS]


def _peak_load(intervals: Sequence[Tuple[float, float, float]], start: float, end: float) -> float:
    """Largest sum of fractions at any instant of [start, end)."""
    points = [start] + [iv[0] for iv in intervals if start < iv[0] < end]
    peak = 0.0
    for p in points:
        load = sum(iv[2] for iv in intervals if iv[0] <= p + EPS and p < iv[1] - EPS)
        peak = max(peak, load)
    return peak


def _find_slot(
    problem: AllocationProblem,
    resource_idx: int,
    earliest: float,
    duration: float,
    fraction: float,
    placed: Sequence[Tuple[float, float, float]],
) -> Optional[float]:
    """Earliest start >= earliest that fits availability and capacity; None when the search bound is hit."""
    calendar = problem.calendar
    hpd = calendar.hours_per_day
    start = earliest
    limit = problem.max_offset

    while start <= limit:
        end = start + duration

        first_bucket = calendar.bucket_of_offset(start)
        last_bucket = calendar.bucket_of_offset(max(start, end - EPS))
        blocked = None
        for bucket in range(first_bucket, last_bucket + 1):
            if not problem.is_available(resource_idx, bucket):
                blocked = bucket
                break
        if blocked is not None:
            nxt = blocked + 1
            while nxt <= problem.max_bucket and not problem.is_available(resource_idx, nxt):
                nxt += 1
            start = max(start, nxt * hpd)
            continue

        if problem.allow_overtime:
            return start

        overlapping = _busy_intervals(placed, start, end)
        if not overlapping or _peak_load(overlapping, start, end) + fraction <= problem.load_limit(resource_idx) + EPS:
            return start
        start = max(start, min(iv[1] for iv in overlapping))

    return None


def decode(problem: AllocationProblem, resource_genes: Sequence[int], fraction_genes: Sequence[float]) -> Tuple[Placement, ...]:
    placements: List[Optional[Placement]] = [None] * problem.n_tasks
    busy: List[List[Tuple[float, float, float]]] = [[] for _ in problem.resources]

    for t in problem.topo_order:
        earliest = problem.release_offsets[t]
        for p in problem.predecessors[t]:
            earliest = max(earliest, placements[p].end)  # type: ignore[union-attr]

        r = resource_genes[t]
        if r == UNASSIGNED:
            duration = problem.unassigned_duration(t)
            placements[t] = Placement(t, UNASSIGNED, 1.0, earliest, earliest + duration, duration, 0.0)
            continue

        # a part-time resource never commits more than its daily share of any hour
        fraction = min(fraction_genes[t], problem.load_limit(r))
        duration = problem.durations[(t, r)]
        start = _find_slot(problem, r, earliest, duration, fraction, busy[r])
        failed = start is None
        if failed:
            start = earliest
        end = start + duration
        cost = duration * fraction * problem.resources[r].cost_rate
        busy[r].append((start, end, fraction))
        placements[t] = Placement(t, r, fraction, start, end, duration, cost, placement_failed=failed)

    return tuple(placements)  # type: ignore[arg-type]


def resource_utilization(problem: AllocationProblem, placements: Sequence[Placement], makespan: float) -> Tuple[float, ...]:
    """Percent of each resource's available working hours within [0, makespan] that is allocated (capped at 100)."""
    if makespan <= EPS:
        return tuple(0.0 for _ in problem.resources)
    last_bucket = problem.calendar.bucket_of_offset(makespan - EPS)
    busy = [0.0] * len(problem.resources)
    for pl in placements:
        if pl.assigned:
            busy[pl.resource_idx] += pl.duration * pl.fraction

    out: List[float] = []
    for r in range(len(problem.resources)):
        buckets = sum(1 for b in range(last_bucket + 1) if problem.is_available(r, b))
        available_hours = buckets * problem.bucket_capacity_hours[r]
        if available_hours <= EPS:
            out.append(0.0)
            continue
        out.append(min(busy[r] / available_hours, 1.0) * 100.0)
    return tuple(out)


def evaluate(problem: AllocationProblem, resource_genes: Sequence[int], fraction_genes: Sequence[float]) -> Evaluation:
    placements = decode(problem, resource_genes, fraction_genes)

    total_cost = sum(pl.cost for pl in placements)
    makespan = max((pl.end for pl in placements), default=0.0)

    unassigned = sum(1 for pl in placements if not pl.assigned)
    failures = sum(1 for pl in placements if pl.placement_failed)
    breaches = 0
    for pl in placements:
        deadline = problem.deadline_offsets[pl.task_idx]
        if deadline is not None and pl.end > deadline + EPS:
            breaches += 1
    budget = problem.budget_limit
    budget_breached = budget is not None and total_cost > budget + EPS
    violations = unassigned + failures + breaches + (1 if budget_breached else 0)

    per_resource = resource_utilization(problem, placements, makespan)
    utilization_avg = mean(per_resource)

    cost_score = 1.0 if budget is None else clamp(1.0 - total_cost / budget, 0.0, 1.0)
    utilization_score = utilization_avg / 100.0
    fitness = W_COST * cost_score + W_UTILIZATION * utilization_score - W_VIOLATION * violations + FITNESS_OFFSET

    return Evaluation(
        fitness=fitness,
        violations=violations,
        total_cost=total_cost,
        makespan=makespan,
        utilization_avg=utilization_avg,
        resource_utilization=per_resource,
        placements=placements,
        unassigned=unassigned,
        placement_failures=failures,
        deadline_breaches=breaches,
        budget_breached=budget_breached,
    )


__all__ = [
    "Placement",
    "Evaluation",
    "decode",
    "evaluate",
    "resource_utilization",
]
