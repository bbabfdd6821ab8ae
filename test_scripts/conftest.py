# Shared fixtures: a small construction project, in-memory collaborators and a throwaway SQLite schema
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Dict, List

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from allocation_engine.config import Settings  # noqa: E402
from allocation_engine.db.base import Base  # noqa: E402
from allocation_engine.db import models  # noqa: E402,F401  side-effect: register all models
from allocation_engine.schemas.domain import Resource, SkillLevel, Task  # noqa: E402
from allocation_engine.schemas.request import OptimizationRequest  # noqa: E402
from allocation_engine.services.collaborators import (  # noqa: E402
    InMemoryProjectRepository,
    InMemoryResourceRepository,
    InMemoryResultStore,
)
from allocation_engine.services.optimization import ProblemBuilder  # noqa: E402
from allocation_engine.services.orchestrator import Orchestrator  # noqa: E402
from allocation_engine.services.scoring import get_model  # noqa: E402

logger = logging.getLogger(__name__)

HORIZON_START = datetime(2026, 6, 1, 8, 0)  # Monday
HORIZON_END = datetime(2026, 8, 31, 16, 0)


def make_tasks() -> List[Task]:
    return [
        Task(
            task_id="T1",
            name="Frame walls",
            project_id="P1",
            required_skills=["carpentry"],
            min_proficiency=2,
            base_duration_hours=24,
            complexity=5,
            site_accessibility=5,
        ),
        Task(
            task_id="T2",
            name="Install roof trusses",
            project_id="P1",
            required_skills=["framing"],
            min_proficiency=2,
            base_duration_hours=24,
            dependencies=["T1"],
            complexity=5,
            site_accessibility=5,
        ),
        Task(
            task_id="T3",
            name="Rough-in wiring",
            project_id="P1",
            required_skills=["electrical"],
            min_proficiency=2,
            base_duration_hours=4,
            complexity=5,
            site_accessibility=5,
        ),
    ]


def make_resources() -> List[Resource]:
    return [
        Resource(
            resource_id="R1",
            name="Alex Carpenter",
            capabilities=[
                SkillLevel(skill="carpentry", proficiency=4, years_experience=10),
                SkillLevel(skill="framing", proficiency=4, years_experience=10),
            ],
            cost_rate=50,
            capacity_per_day=8,
            historical_delay_rate=0.1,
        ),
        Resource(
            resource_id="R2",
            name="Sam Electrician",
            capabilities=[
                SkillLevel(skill="framing", proficiency=3, years_experience=4),
                SkillLevel(skill="electrical", proficiency=4, years_experience=8),
            ],
            cost_rate=40,
            capacity_per_day=8,
        ),
    ]


def make_request(request_id: str = "req-001", **overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "request_id": request_id,
        "project_ids": ["P1"],
        "goal": "balance_cost_time",
        "constraints": {"budget_limit": 1_000_000},
        "time_horizon": {"start": HORIZON_START.isoformat(), "end": HORIZON_END.isoformat()},
        "random_seed": 42,
        "genetic": {"population_size": 20, "max_generations": 15},
    }
    payload.update(overrides)
    return payload


def build_problem(tasks=None, resources=None, **request_overrides):
    request = OptimizationRequest.model_validate(make_request(**request_overrides))
    return ProblemBuilder(get_model("weighted")).build(
        request,
        tasks if tasks is not None else make_tasks(),
        resources if resources is not None else make_resources(),
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        GA_POPULATION_SIZE=20,
        GA_MAX_GENERATIONS=15,
        GA_FITNESS_WORKERS=2,
        RETRY_BASE_DELAY_SECONDS=0.0,
        ORCHESTRATOR_MAX_CONCURRENT_RUNS=2,
        API_SHARED_SECRET="",
    )


@pytest.fixture
def tasks() -> List[Task]:
    return make_tasks()


@pytest.fixture
def resources() -> List[Resource]:
    return make_resources()


@pytest.fixture
def request_payload() -> Dict[str, Any]:
    return make_request()


@pytest.fixture
def result_store() -> InMemoryResultStore:
    return InMemoryResultStore()


@pytest.fixture
def orchestrator(tasks, resources, result_store, test_settings):
    orch = Orchestrator(
        InMemoryProjectRepository(tasks),
        InMemoryResourceRepository(resources),
        result_store,
        app_settings=test_settings,
        sleep=lambda s: None,
    )
    yield orch
    orch.shutdown(wait=True)


@pytest.fixture
def session_factory():
    """In-memory SQLite shared across threads; schema from the ORM models."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    logger.info("test-bootstrap: schema ensured")
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    engine.dispose()


@pytest.fixture(autouse=True)
def restore_engine_logger():
    """create_app() and the CLI reconfigure the engine logger; put it back after each test."""
    root = logging.getLogger("allocation_engine")
    saved = (root.handlers[:], root.level, root.propagate)
    yield
    root.handlers, root.level, root.propagate = saved
