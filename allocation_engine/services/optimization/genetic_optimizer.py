# allocation_engine/services/optimization/genetic_optimizer.py
"""
Genetic search over task -> (resource, capacity fraction) assignments.

Population layout is arena-style: one flat list of resource genes and one of
fraction genes, indexed by individual * n_tasks + task, plus a per-individual
cached Evaluation (None until evaluated, reset on mutation/crossover). Two
populations are allocated per run and swapped every generation.

Per generation:
  1. evaluate dirty individuals on the worker pool (order-preserving map)
  2. rank, record trajectory, check convergence / cancellation / cap
  3. copy elites (with their cached evaluations), then fill the rest by
     tournament selection, single-point crossover and mutation

All randomness comes from one random.Random(seed) used on the calling thread
only, so a fixed seed gives identical runs regardless of worker count.
"""
from __future__ import annotations

import logging
import math
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from allocation_engine.config import Settings
from allocation_engine.schemas.request import GeneticParameters
from allocation_engine.services.optimization.fitness import Evaluation, evaluate
from allocation_engine.services.optimization.problem_builder import UNASSIGNED, AllocationProblem
from allocation_engine.utils.numeric import mean, variance

logger = logging.getLogger(__name__)

TOP_K_FOR_CONVERGENCE = 10


@dataclass(frozen=True)
class GeneticConfig:
    """Configuration for one genetic optimizer run."""

    population_size: int = 100
    max_generations: int = 200
    tournament_size: int = 5
    crossover_rate: float = 0.8
    mutation_rate: float = 0.1
    elitism_rate: float = 0.1
    convergence_threshold: float = 0.001
    convergence_window: int = 10
    fitness_workers: int = 4
    seed: Optional[int] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        overrides: Optional[GeneticParameters] = None,
        seed: Optional[int] = None,
    ) -> "GeneticConfig":
        o = overrides or GeneticParameters()

        def pick(value, default):
            return default if value is None else value

        return cls(
            population_size=pick(o.population_size, settings.GA_POPULATION_SIZE),
            max_generations=pick(o.max_generations, settings.GA_MAX_GENERATIONS),
            tournament_size=pick(o.tournament_size, settings.GA_TOURNAMENT_SIZE),
            crossover_rate=pick(o.crossover_rate, settings.GA_CROSSOVER_RATE),
            mutation_rate=pick(o.mutation_rate, settings.GA_MUTATION_RATE),
            elitism_rate=pick(o.elitism_rate, settings.GA_ELITISM_RATE),
            convergence_threshold=pick(o.convergence_threshold, settings.GA_CONVERGENCE_THRESHOLD),
            convergence_window=settings.GA_CONVERGENCE_WINDOW,
            fitness_workers=pick(o.fitness_workers, settings.GA_FITNESS_WORKERS),
            seed=pick(seed, settings.GA_RANDOM_SEED),
        )

    @property
    def elite_count(self) -> int:
        return min(self.population_size, max(1, int(math.floor(self.population_size * self.elitism_rate))))


class CancellationToken:
    """Cooperative cancellation flag checked between generations."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class Population:
    """Fixed-size arena of individuals for one generation."""

    def __init__(self, size: int, n_tasks: int) -> None:
        self.size = size
        self.n_tasks = n_tasks
        self.resource_genes: List[int] = [UNASSIGNED] * (size * n_tasks)
        self.fraction_genes: List[float] = [1.0] * (size * n_tasks)
        self.evaluations: List[Optional[Evaluation]] = [None] * size

    def _span(self, i: int) -> slice:
        return slice(i * self.n_tasks, (i + 1) * self.n_tasks)

    def genes(self, i: int) -> Tuple[List[int], List[float]]:
        s = self._span(i)
        return self.resource_genes[s], self.fraction_genes[s]

    def set_genes(self, i: int, resource_genes: List[int], fraction_genes: List[float], evaluation: Optional[Evaluation] = None) -> None:
        s = self._span(i)
        self.resource_genes[s] = resource_genes
        self.fraction_genes[s] = fraction_genes
        self.evaluations[i] = evaluation

    def copy_from(self, i: int, other: "Population", j: int) -> None:
        r, f = other.genes(j)
        self.set_genes(i, r, f, other.evaluations[j])

    def ranking(self) -> List[int]:
        """Individual indices, best first (requires every individual evaluated)."""
        return sorted(range(self.size), key=lambda i: self.evaluations[i].sort_key(i))  # type: ignore[union-attr]


@dataclass(frozen=True)
class Individual:
    """A complete candidate assignment with its evaluation."""
    resource_genes: Tuple[int, ...]
    fraction_genes: Tuple[float, ...]
    evaluation: Evaluation

    @property
    def fitness(self) -> float:
        return self.evaluation.fitness


@dataclass
class OptimizerOutcome:
    best: Individual
    fitness_history: List[float] = field(default_factory=list)  # elite fitness per generation
    generations_run: int = 0
    converged: bool = False
    completed: bool = True  # False when stopped by cancellation or deadline
    feasible: bool = True
    unsatisfiable_task_ids: List[str] = field(default_factory=list)


class GeneticOptimizer:
    def __init__(
        self,
        problem: AllocationProblem,
        config: Optional[GeneticConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.problem = problem
        self.config = config or GeneticConfig()
        self.clock = clock
        self.rng = random.Random(self.config.seed)

    # -------------------------
    # Public API
    # -------------------------

    def run(
        self,
        cancel_token: Optional[CancellationToken] = None,
        deadline: Optional[float] = None,
        on_generation: Optional[Callable[[int, Evaluation], None]] = None,
    ) -> OptimizerOutcome:
        """
        Search until convergence, the generation cap, cancellation or deadline.

        Never raises for infeasible input: an individual with unassigned tasks
        is still evaluated (and penalized) and the best one is returned with
        feasible=False.
        """
        cfg = self.config
        problem = self.problem
        current = Population(cfg.population_size, problem.n_tasks)
        nxt = Population(cfg.population_size, problem.n_tasks)
        self._initialize(current)

        history: List[float] = []
        top_means: List[float] = []
        converged = False
        completed = True
        generations = 0

        with ThreadPoolExecutor(max_workers=max(1, cfg.fitness_workers), thread_name_prefix="fitness") as pool:
            while True:
                self._evaluate(current, pool)
                generations += 1
                ranking = current.ranking()
                elite = current.evaluations[ranking[0]]
                assert elite is not None
                history.append(elite.fitness)
                top = ranking[:TOP_K_FOR_CONVERGENCE]
                top_means.append(mean(current.evaluations[i].fitness for i in top))  # type: ignore[union-attr]

                logger.debug(
                    "optimizer.generation",
                    extra={
                        "request_id": problem.request_id,
                        "generation": generations,
                        "best_fitness": elite.fitness,
                        "violations": elite.violations,
                    },
                )
                if on_generation is not None:
                    on_generation(generations, elite)

                if self._converged(top_means):
                    converged = True
                    break
                if generations >= cfg.max_generations:
                    break
                if cancel_token is not None and cancel_token.cancelled:
                    completed = False
                    logger.info("optimizer.cancelled", extra={"request_id": problem.request_id, "generation": generations})
                    break
                if deadline is not None and self.clock() >= deadline:
                    completed = False
                    logger.info("optimizer.deadline_reached", extra={"request_id": problem.request_id, "generation": generations})
                    break

                self._breed(current, nxt, ranking)
                current, nxt = nxt, current

        best_idx = current.ranking()[0]
        r, f = current.genes(best_idx)
        best_eval = current.evaluations[best_idx]
        assert best_eval is not None
        best = Individual(tuple(r), tuple(f), best_eval)

        unsatisfiable = problem.unsatisfiable_task_ids
        feasible = not unsatisfiable and best_eval.violations == 0
        logger.info(
            "optimizer.finished",
            extra={
                "request_id": problem.request_id,
                "generation": generations,
                "best_fitness": best_eval.fitness,
                "violations": best_eval.violations,
                "run_status": "converged" if converged else ("completed" if completed else "stopped"),
            },
        )
        return OptimizerOutcome(
            best=best,
            fitness_history=history,
            generations_run=generations,
            converged=converged,
            completed=completed,
            feasible=feasible,
            unsatisfiable_task_ids=unsatisfiable,
        )

    # -------------------------
    # Steps
    # -------------------------

    def _random_genes(self) -> Tuple[List[int], List[float]]:
        problem = self.problem
        resource_genes: List[int] = []
        fraction_genes: List[float] = []
        for cands in problem.candidates:
            resource_genes.append(self.rng.choice(cands) if cands else UNASSIGNED)
            fraction_genes.append(self.rng.choice(problem.fraction_grid))
        return resource_genes, fraction_genes

    def _initialize(self, population: Population) -> None:
        # Individual 0 is seeded from the scoring model; the rest are uniform over qualified candidates.
        r, f = self.problem.seeded_genes()
        population.set_genes(0, r, f)
        for i in range(1, population.size):
            r, f = self._random_genes()
            population.set_genes(i, r, f)

    def _evaluate(self, population: Population, pool: ThreadPoolExecutor) -> None:
        dirty = [i for i in range(population.size) if population.evaluations[i] is None]
        if not dirty:
            return
        problem = self.problem
        genes = [population.genes(i) for i in dirty]
        results = pool.map(lambda g: evaluate(problem, g[0], g[1]), genes)
        for i, evaluation in zip(dirty, results):
            population.evaluations[i] = evaluation

    def _converged(self, top_means: List[float]) -> bool:
        window = self.config.convergence_window
        if len(top_means) < window:
            return False
        return variance(top_means[-window:]) < self.config.convergence_threshold

    def _tournament(self, rank_of: List[int]) -> int:
        size = len(rank_of)
        contenders = [self.rng.randrange(size) for _ in range(max(1, self.config.tournament_size))]
        return min(contenders, key=lambda i: rank_of[i])

    def _crossover(self, a: List[int], af: List[float], b: List[int], bf: List[float]):
        n = len(a)
        point = self.rng.randint(1, n - 1)
        return (
            a[:point] + b[point:],
            af[:point] + bf[point:],
            b[:point] + a[point:],
            bf[:point] + af[point:],
        )

    def _mutate(self, resource_genes: List[int], fraction_genes: List[float]) -> None:
        problem = self.problem
        t = self.rng.randrange(problem.n_tasks)
        cands = problem.candidates[t]
        if self.rng.random() < 0.5 and len(cands) > 1:
            others = [c for c in cands if c != resource_genes[t]]
            resource_genes[t] = self.rng.choice(others)
            return
        grid = problem.fraction_grid
        try:
            pos = grid.index(fraction_genes[t])
        except ValueError:
            pos = len(grid) - 1
        step = self.rng.choice((-2, -1, 1, 2))
        fraction_genes[t] = grid[min(len(grid) - 1, max(0, pos + step))]

    def _breed(self, current: Population, nxt: Population, ranking: List[int]) -> None:
        cfg = self.config
        rank_of = [0] * current.size
        for pos, i in enumerate(ranking):
            rank_of[i] = pos

        filled = 0
        for i in ranking[: cfg.elite_count]:
            nxt.copy_from(filled, current, i)
            filled += 1

        n = self.problem.n_tasks
        while filled < nxt.size:
            pa = self._tournament(rank_of)
            pb = self._tournament(rank_of)
            ar, af = current.genes(pa)
            br, bf = current.genes(pb)
            children = [(ar, af, current.evaluations[pa]), (br, bf, current.evaluations[pb])]

            if n >= 2 and self.rng.random() < cfg.crossover_rate:
                c1r, c1f, c2r, c2f = self._crossover(ar, af, br, bf)
                children = [(c1r, c1f, None), (c2r, c2f, None)]

            for cr, cf, cached in children:
                if filled >= nxt.size:
                    break
                if self.rng.random() < cfg.mutation_rate:
                    self._mutate(cr, cf)
                    cached = None
                nxt.set_genes(filled, cr, cf, cached)
                filled += 1


__all__ = [
    "GeneticConfig",
    "CancellationToken",
    "Population",
    "Individual",
    "OptimizerOutcome",
    "GeneticOptimizer",
]
