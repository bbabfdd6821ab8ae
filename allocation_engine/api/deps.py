# allocation_engine/api/deps.py

from __future__ import annotations

from fastapi import Header, HTTPException, Request

from allocation_engine.config import settings
from allocation_engine.services.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator is not configured")
    return orchestrator


def require_shared_secret(x_allocation_engine_secret: str | None = Header(default=None)) -> None:
    """
    Shared secret header from the calling application.
    Header name: X-Allocation-Engine-Secret
    """
    expected = settings.API_SHARED_SECRET
    if not expected:
        # If secret isn't configured, fail closed.
        raise HTTPException(status_code=500, detail="API_SHARED_SECRET is not configured")

    if not x_allocation_engine_secret or x_allocation_engine_secret != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")
