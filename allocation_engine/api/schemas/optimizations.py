# allocation_engine/api/schemas/optimizations.py

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel

from allocation_engine.schemas.result import OptimizationResult, Recommendation


class OptimizationSubmitResponse(BaseModel):
    request_id: str
    status: Literal["queued"]


class OptimizationStatusResponse(BaseModel):
    request_id: str
    status: Literal["queued", "running", "success", "partial", "failed"]

    submitted_at: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    result: Optional[OptimizationResult] = None
    error_type: Optional[str] = None
    error: Optional[str] = None


class RecommendationDecisionResponse(BaseModel):
    request_id: str
    recommendation: Recommendation


class CancelResponse(BaseModel):
    request_id: str
    cancelled: bool
