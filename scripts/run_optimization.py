#!/usr/bin/env python3

# scripts/run_optimization.py

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from allocation_engine.config import settings, setup_json_logging
from allocation_engine.errors import InfraError, ValidationError
from allocation_engine.services.collaborators import InMemoryResultStore
from allocation_engine.services.fixtures import load_fixture
from allocation_engine.services.orchestrator import Orchestrator


logger = logging.getLogger("allocation_engine.scripts.run_optimization")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one resource-allocation optimization synchronously from a JSON fixture",
        epilog="""
        Examples:
        # Run the request embedded in the fixture and print the result
        %(prog)s --input fixtures/sample.json

        # Reproducible run with a smaller search
        %(prog)s --input fixtures/sample.json --seed 42 --generations 50 --population 40

        # Write the result to a file
        %(prog)s --input fixtures/sample.json --output result.json
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--input", required=True, help="Fixture JSON with tasks, resources and a request")
    parser.add_argument("--seed", type=int, default=None, help="Random seed (overrides the fixture request)")
    parser.add_argument("--generations", type=int, default=None, help="Max generations override")
    parser.add_argument("--population", type=int, default=None, help="Population size override")
    parser.add_argument("--output", type=str, default=None, help="Write the result JSON here instead of stdout")
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL (e.g. DEBUG)")
    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    level_name = (args.log_level or settings.LOG_LEVEL).upper()
    setup_json_logging(log_level=getattr(logging, level_name, logging.INFO))

    try:
        fixture = load_fixture(args.input)
    except (FileNotFoundError, ValidationError, json.JSONDecodeError) as e:
        logger.error("cli.fixture_invalid", extra={"reason": str(e)})
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    if fixture.request is None:
        print("ERROR: fixture has no 'request' object", file=sys.stderr)
        return 2

    request = dict(fixture.request)
    if args.seed is not None:
        request["random_seed"] = args.seed
    genetic = dict(request.get("genetic") or {})
    if args.generations is not None:
        genetic["max_generations"] = args.generations
    if args.population is not None:
        genetic["population_size"] = args.population
    request["genetic"] = genetic

    projects, resources = fixture.repositories()
    orchestrator = Orchestrator(projects, resources, InMemoryResultStore())
    try:
        result = orchestrator.run(request)
    except ValidationError as e:
        print(f"ERROR: invalid request: {e}", file=sys.stderr)
        for err in e.errors:
            print(f"  - {err}", file=sys.stderr)
        return 2
    except InfraError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 3
    finally:
        orchestrator.shutdown()

    payload = json.dumps(result.model_dump(mode="json"), indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(payload)
        print(
            f"✓ {result.request_id}: status={result.status} feasible={result.feasible} "
            f"cost={result.performance_metrics.optimized_cost:,.2f} "
            f"duration={result.performance_metrics.optimized_duration_hours:.1f}h -> {args.output}"
        )
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
