from .problem_builder import AllocationProblem, ProblemBuilder, UNASSIGNED
from .fitness import Evaluation, Placement, decode, evaluate
from .genetic_optimizer import (
    CancellationToken,
    GeneticConfig,
    GeneticOptimizer,
    Individual,
    OptimizerOutcome,
    Population,
)

__all__ = [
    "AllocationProblem",
    "ProblemBuilder",
    "UNASSIGNED",
    "Evaluation",
    "Placement",
    "decode",
    "evaluate",
    "CancellationToken",
    "GeneticConfig",
    "GeneticOptimizer",
    "Individual",
    "OptimizerOutcome",
    "Population",
]
