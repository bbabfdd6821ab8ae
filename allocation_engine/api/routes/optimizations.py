# allocation_engine/api/routes/optimizations.py

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from allocation_engine.api.deps import get_orchestrator, require_shared_secret
from allocation_engine.api.schemas.optimizations import (
    CancelResponse,
    OptimizationStatusResponse,
    OptimizationSubmitResponse,
    RecommendationDecisionResponse,
)
from allocation_engine.errors import InfraError, NotFoundError, ValidationError
from allocation_engine.schemas.result import OptimizationResult, owning_request_id
from allocation_engine.schemas.run_status import FailedRun, PendingRun
from allocation_engine.services.orchestrator import Orchestrator


router = APIRouter(prefix="/optimizations", tags=["optimizations"])


def _iso(dt):
    return dt.isoformat() if dt else None


@router.post(
    "",
    status_code=202,
    response_model=OptimizationSubmitResponse,
    dependencies=[Depends(require_shared_secret)],
)
def submit_optimization(
    payload: Dict[str, Any] = Body(...),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> OptimizationSubmitResponse:
    """
    Validate the request and start the run in the background; returns request_id immediately.
    """
    try:
        request_id = orchestrator.submit(payload)
        return OptimizationSubmitResponse(request_id=request_id, status="queued")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "errors": e.errors}) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to submit optimization: {e}") from e


@router.get(
    "/{request_id}",
    response_model=OptimizationStatusResponse,
    dependencies=[Depends(require_shared_secret)],
)
def get_optimization(request_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)) -> OptimizationStatusResponse:
    """
    Result when finished, otherwise the queued/running/failed status.
    """
    try:
        outcome = orchestrator.get_result(request_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail="request_id not found") from e
    except InfraError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    if isinstance(outcome, PendingRun):
        return OptimizationStatusResponse(
            request_id=request_id,
            status=outcome.status,
            submitted_at=_iso(outcome.submitted_at),
            started_at=_iso(outcome.started_at),
        )
    if isinstance(outcome, FailedRun):
        return OptimizationStatusResponse(
            request_id=request_id,
            status="failed",
            finished_at=_iso(outcome.finished_at),
            error_type=outcome.error_type,
            error=outcome.message,
        )
    assert isinstance(outcome, OptimizationResult)
    return OptimizationStatusResponse(
        request_id=request_id,
        status=outcome.status,
        finished_at=_iso(outcome.computed_at),
        result=outcome,
    )


@router.post(
    "/{request_id}/cancel",
    response_model=CancelResponse,
    dependencies=[Depends(require_shared_secret)],
)
def cancel_optimization(request_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)) -> CancelResponse:
    return CancelResponse(request_id=request_id, cancelled=orchestrator.cancel(request_id))


def _decide(orchestrator: Orchestrator, request_id: str, recommendation_id: str, accept: bool) -> RecommendationDecisionResponse:
    # recommendation ids embed their request id; reject ids that belong to another run
    if owning_request_id(recommendation_id) != request_id:
        raise HTTPException(status_code=404, detail="recommendation_id not found for this request")
    try:
        if accept:
            rec = orchestrator.accept_recommendation(recommendation_id)
        else:
            rec = orchestrator.reject_recommendation(recommendation_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail="recommendation_id not found") from e
    except InfraError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return RecommendationDecisionResponse(request_id=request_id, recommendation=rec)


@router.post(
    "/{request_id}/recommendations/{recommendation_id}/accept",
    response_model=RecommendationDecisionResponse,
    dependencies=[Depends(require_shared_secret)],
)
def accept_recommendation(
    request_id: str,
    recommendation_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> RecommendationDecisionResponse:
    return _decide(orchestrator, request_id, recommendation_id, accept=True)


@router.post(
    "/{request_id}/recommendations/{recommendation_id}/reject",
    response_model=RecommendationDecisionResponse,
    dependencies=[Depends(require_shared_secret)],
)
def reject_recommendation(
    request_id: str,
    recommendation_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> RecommendationDecisionResponse:
    return _decide(orchestrator, request_id, recommendation_id, accept=False)
