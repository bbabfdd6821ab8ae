"""Genetic search: coverage, capacity, elitism, determinism and infeasible input."""
from collections import defaultdict

import pytest

from conftest import build_problem, make_request, make_resources
from allocation_engine.schemas.domain import Resource, SkillLevel, Task
from allocation_engine.schemas.request import GeneticParameters, OptimizationRequest
from allocation_engine.services.optimization import (
    CancellationToken,
    GeneticConfig,
    GeneticOptimizer,
    Population,
    ProblemBuilder,
    evaluate,
)
from allocation_engine.services.optimization.fitness import EPS
from allocation_engine.services.scoring import get_model

SMALL = GeneticConfig(population_size=20, max_generations=15, fitness_workers=2, seed=42)


def _contended_tasks():
    # Four independent carpentry tasks that only R1 can do
    return [
        Task(task_id=f"C{i}", project_id="P1", required_skills=["carpentry"], base_duration_hours=12)
        for i in range(4)
    ]


def _max_concurrent_load(problem, placements):
    by_resource = defaultdict(list)
    for pl in placements:
        if pl.assigned:
            by_resource[pl.resource_idx].append(pl)
    peak = 0.0
    for items in by_resource.values():
        for anchor in items:
            load = sum(pl.fraction for pl in items if pl.start <= anchor.start + EPS and anchor.start < pl.end - EPS)
            peak = max(peak, load)
    return peak


def test_every_task_gets_a_qualified_resource():
    problem = build_problem()
    outcome = GeneticOptimizer(problem, SMALL).run()
    best = outcome.best
    assert outcome.feasible
    assert len(best.resource_genes) == problem.n_tasks
    for t, r in enumerate(best.resource_genes):
        assert r in problem.candidates[t]
    for f in best.fraction_genes:
        assert f in problem.fraction_grid


def test_dependencies_respected():
    problem = build_problem()
    placements = GeneticOptimizer(problem, SMALL).run().best.evaluation.placements
    assert placements[1].start >= placements[0].end - EPS


def test_capacity_never_exceeded_without_overtime():
    problem = build_problem(tasks=_contended_tasks())
    outcome = GeneticOptimizer(problem, SMALL).run()
    assert _max_concurrent_load(problem, outcome.best.evaluation.placements) <= 1.0 + 1e-6
    for seed in range(5):
        cfg = GeneticConfig(population_size=6, max_generations=3, fitness_workers=1, seed=seed)
        best = GeneticOptimizer(problem, cfg).run().best
        assert _max_concurrent_load(problem, best.evaluation.placements) <= 1.0 + 1e-6


def test_part_time_resource_load_limited_to_daily_share():
    resources = make_resources()
    resources[0] = resources[0].model_copy(update={"capacity_per_day": 4})  # R1: half of an 8h day
    problem = build_problem(tasks=_contended_tasks(), resources=resources)
    assert problem.load_limit(0) == pytest.approx(0.5)

    full = evaluate(problem, [0, 0, 0, 0], [1.0] * 4)
    assert all(pl.fraction == pytest.approx(0.5) for pl in full.placements)
    assert full.placement_failures == 0

    best = GeneticOptimizer(problem, SMALL).run().best
    assert all(pl.fraction <= 0.5 + EPS for pl in best.evaluation.placements)
    assert _max_concurrent_load(problem, best.evaluation.placements) <= 0.5 + 1e-6


def test_overtime_allows_stacking():
    problem = build_problem(tasks=_contended_tasks(), preferences={"allow_overtime": True})
    placements = evaluate(problem, [0, 0, 0, 0], [1.0] * 4).placements
    assert all(pl.start == 0.0 for pl in placements)
    assert _max_concurrent_load(problem, placements) == pytest.approx(4.0)


def test_elite_fitness_never_decreases():
    problem = build_problem(tasks=_contended_tasks())
    seen = []
    outcome = GeneticOptimizer(problem, SMALL).run(on_generation=lambda g, ev: seen.append(ev.fitness))
    assert seen == outcome.fitness_history
    assert len(seen) == outcome.generations_run
    for earlier, later in zip(seen, seen[1:]):
        assert later >= earlier - 1e-12


def test_same_seed_same_result():
    problem = build_problem(tasks=_contended_tasks())
    a = GeneticOptimizer(problem, SMALL).run()
    b = GeneticOptimizer(problem, GeneticConfig(population_size=20, max_generations=15, fitness_workers=4, seed=42)).run()
    assert a.best.resource_genes == b.best.resource_genes
    assert a.best.fraction_genes == b.best.fraction_genes
    assert a.fitness_history == b.fitness_history


def test_infeasible_input_returns_best_effort(tasks):
    extra = Task(task_id="T4", project_id="P1", required_skills=["plumbing"], base_duration_hours=6)
    problem = build_problem(tasks=tasks + [extra])
    outcome = GeneticOptimizer(problem, SMALL).run()
    assert not outcome.feasible
    assert outcome.unsatisfiable_task_ids == ["T4"]
    assert outcome.best.evaluation.unassigned == 1
    assert outcome.best.evaluation.violations >= 1


def test_cancellation_stops_after_current_generation():
    problem = build_problem()
    token = CancellationToken()
    token.cancel()
    outcome = GeneticOptimizer(problem, SMALL).run(cancel_token=token)
    assert outcome.generations_run == 1
    assert not outcome.completed


def test_deadline_stops_search():
    problem = build_problem()
    outcome = GeneticOptimizer(problem, SMALL, clock=lambda: 100.0).run(deadline=50.0)
    assert outcome.generations_run == 1
    assert not outcome.completed


def test_convergence_detected_on_flat_landscape():
    # One task, one resource and a single fraction: every individual is identical
    request = OptimizationRequest.model_validate(make_request())
    tasks = [Task(task_id="ONLY", project_id="P1", required_skills=["carpentry"], base_duration_hours=8)]
    resources = [Resource(resource_id="R1", capabilities=[SkillLevel(skill="carpentry", proficiency=4)], cost_rate=50)]
    problem = ProblemBuilder(get_model("weighted"), min_fraction=1.0).build(request, tasks, resources)
    assert problem.fraction_grid == (1.0,)
    cfg = GeneticConfig(population_size=10, max_generations=100, convergence_window=5, seed=1)
    outcome = GeneticOptimizer(problem, cfg).run()
    assert outcome.converged
    assert outcome.completed
    assert outcome.generations_run == 5


def test_budget_breach_counts_as_violation():
    problem = build_problem(constraints={"budget_limit": 100})
    evaluation = evaluate(problem, *problem.seeded_genes())
    assert evaluation.budget_breached
    assert evaluation.violations == 1
    # cost score bottoms out at 0 once over budget
    assert evaluation.fitness == pytest.approx(0.4 * evaluation.utilization_avg / 100.0 - 0.1 + 0.2)


def test_fitness_formula_without_violations():
    problem = build_problem()
    ev = evaluate(problem, *problem.seeded_genes())
    assert ev.violations == 0
    cost_score = 1.0 - ev.total_cost / 1_000_000
    assert ev.fitness == pytest.approx(0.4 * cost_score + 0.4 * ev.utilization_avg / 100.0 + 0.2)


def test_population_arena_layout():
    pop = Population(size=3, n_tasks=2)
    pop.set_genes(1, [0, 1], [0.5, 1.0])
    assert pop.genes(1) == ([0, 1], [0.5, 1.0])
    assert pop.resource_genes[2:4] == [0, 1]
    other = Population(size=3, n_tasks=2)
    other.copy_from(0, pop, 1)
    assert other.genes(0) == ([0, 1], [0.5, 1.0])
    assert other.evaluations[0] is None


def test_config_from_settings_applies_overrides(test_settings):
    cfg = GeneticConfig.from_settings(test_settings, GeneticParameters(population_size=8), seed=3)
    assert cfg.population_size == 8
    assert cfg.max_generations == 15
    assert cfg.seed == 3
    assert cfg.elite_count == 1
