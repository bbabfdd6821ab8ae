# allocation_engine/services/analysis/recommendations.py

from __future__ import annotations

from typing import List, Sequence

from allocation_engine.schemas.request import OptimizationGoal
from allocation_engine.schemas.result import (
    Allocation,
    OptimizationWarning,
    PerformanceMetrics,
    Recommendation,
    recommendation_id,
)
from allocation_engine.services.optimization.fitness import Evaluation
from allocation_engine.services.optimization.genetic_optimizer import OptimizerOutcome
from allocation_engine.services.optimization.problem_builder import AllocationProblem
from allocation_engine.utils.numeric import clamp, mean, pct

MAX_ALTERNATIVES = 3
INFEASIBLE_CONFIDENCE_FACTOR = 0.5
INCOMPLETE_CONFIDENCE_FACTOR = 0.9

_GOAL_PHRASES = {
    OptimizationGoal.MINIMIZE_COST: "minimizing cost",
    OptimizationGoal.MINIMIZE_DURATION: "minimizing duration",
    OptimizationGoal.MAXIMIZE_QUALITY: "maximizing quality",
    OptimizationGoal.BALANCE_COST_TIME: "balancing cost and time",
    OptimizationGoal.MAXIMIZE_UTILIZATION: "maximizing utilization",
    OptimizationGoal.MINIMIZE_IDLE_TIME: "minimizing idle time",
}


def success_probabilities(problem: AllocationProblem, evaluation: Evaluation) -> List[float]:
    return [
        problem.predictions[(pl.task_idx, pl.resource_idx)].success_probability
        for pl in evaluation.placements
        if pl.assigned
    ]


def confidence_score(problem: AllocationProblem, outcome: OptimizerOutcome) -> float:
    """mean success probability x 0.5 if infeasible x 0.9 if the run was cut short."""
    base = mean(success_probabilities(problem, outcome.best.evaluation))
    if not outcome.feasible:
        base *= INFEASIBLE_CONFIDENCE_FACTOR
    if not outcome.completed:
        base *= INCOMPLETE_CONFIDENCE_FACTOR
    return round(clamp(base, 0.0, 1.0), 4)


def build_recommendations(
    problem: AllocationProblem,
    evaluation: Evaluation,
    allocations: Sequence[Allocation],
    goal: OptimizationGoal,
) -> List[Recommendation]:
    """One pending recommendation per staffed task, in task input order."""
    by_task = {a.task_id: a for a in allocations}
    out: List[Recommendation] = []
    for pl in evaluation.placements:
        if not pl.assigned:
            continue
        t, r = pl.task_idx, pl.resource_idx
        task = problem.tasks[t]
        resource = problem.resources[r]
        allocation = by_task[task.task_id]
        prediction = problem.predictions[(t, r)]
        features = problem.features[(t, r)]

        others = [c for c in problem.candidates[t] if c != r]
        others.sort(key=lambda c: (-problem.predictions[(t, c)].success_probability, problem.resources[c].resource_id))
        alternatives = [problem.resources[c].resource_id for c in others[:MAX_ALTERNATIVES]]

        match = round((features.proficiency + features.experience + prediction.success_probability) / 3.0, 4)
        reasoning = (
            f"{resource.display_name} is qualified for {task.display_name} "
            f"(proficiency {features.proficiency * 5:.1f}/5, predicted success {prediction.success_probability:.0%}, "
            f"duration factor {prediction.expected_duration_factor:.2f}); selected by genetic search "
            f"{_GOAL_PHRASES.get(goal, goal.value)}"
        )
        if alternatives:
            reasoning += f"; alternatives: {', '.join(alternatives)}"

        out.append(
            Recommendation(
                recommendation_id=recommendation_id(problem.request_id, task.task_id),
                task_id=task.task_id,
                task_name=task.display_name,
                resource_id=resource.resource_id,
                resource_name=resource.display_name,
                resource_type=resource.resource_type,
                allocated_fraction=pl.fraction,
                start=allocation.start,
                end=allocation.end,
                estimated_cost=allocation.estimated_cost,
                estimated_duration_hours=allocation.duration_hours,
                match_score=match,
                confidence=round(prediction.success_probability, 4),
                quality_score=round(prediction.success_probability * 100.0, 2),
                risk_score=round((1.0 - prediction.success_probability) * 100.0, 2),
                alternatives=alternatives,
                reasoning=reasoning,
            )
        )
    return out


def build_metrics(
    problem: AllocationProblem,
    outcome: OptimizerOutcome,
    baseline: Evaluation,
    confidence: float,
) -> PerformanceMetrics:
    best = outcome.best.evaluation
    cost_savings = baseline.total_cost - best.total_cost
    time_savings = baseline.makespan - best.makespan
    quality = mean(success_probabilities(problem, best)) * 100.0

    return PerformanceMetrics(
        baseline_cost=round(baseline.total_cost, 2),
        optimized_cost=round(best.total_cost, 2),
        cost_savings=round(cost_savings, 2),
        cost_savings_pct=round(pct(cost_savings, baseline.total_cost), 2),
        baseline_duration_hours=round(baseline.makespan, 4),
        optimized_duration_hours=round(best.makespan, 4),
        time_savings_hours=round(time_savings, 4),
        time_savings_pct=round(pct(time_savings, baseline.makespan), 2),
        utilization_avg=round(best.utilization_avg, 2),
        baseline_utilization_avg=round(baseline.utilization_avg, 2),
        utilization_improvement=round(best.utilization_avg - baseline.utilization_avg, 2),
        quality_score_avg=round(quality, 2),
        confidence=confidence,
        best_fitness=round(best.fitness, 6),
        generations_run=outcome.generations_run,
        converged=outcome.converged,
        fitness_history=[round(f, 6) for f in outcome.fitness_history],
    )


def result_status(outcome: OptimizerOutcome, warnings: Sequence[OptimizationWarning]) -> str:
    if not outcome.feasible or not outcome.completed:
        return "partial"
    if any(w.severity == "critical" for w in warnings):
        return "partial"
    return "success"


__all__ = [
    "recommendation_id",
    "success_probabilities",
    "confidence_score",
    "build_recommendations",
    "build_metrics",
    "result_status",
]
