# allocation_engine/main.py

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from allocation_engine.config import settings, setup_json_logging
from allocation_engine.api.routes.optimizations import router as optimizations_router
from allocation_engine.services.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


def build_default_orchestrator() -> Orchestrator:
    """Repositories from FIXTURE_PATH (empty when unset) and the SQLAlchemy result store."""
    from allocation_engine.db.session import SessionLocal
    from allocation_engine.services.collaborators import InMemoryProjectRepository, InMemoryResourceRepository
    from allocation_engine.services.fixtures import load_fixture
    from allocation_engine.services.result_store import SqlAlchemyResultStore

    if settings.FIXTURE_PATH:
        projects, resources = load_fixture(settings.FIXTURE_PATH).repositories()
        logger.info("app.fixture_loaded", extra={"reason": settings.FIXTURE_PATH})
    else:
        projects, resources = InMemoryProjectRepository([]), InMemoryResourceRepository([])
    return Orchestrator(projects, resources, SqlAlchemyResultStore(SessionLocal))


def create_app(orchestrator: Optional[Orchestrator] = None) -> FastAPI:
    setup_json_logging(log_level=getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO))

    app = FastAPI(
        title="Resource Allocation Engine - Optimization API",
        version="0.1.0",
    )
    app.state.orchestrator = orchestrator or build_default_orchestrator()

    app.include_router(optimizations_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()
