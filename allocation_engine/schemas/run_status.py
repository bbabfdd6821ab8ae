# allocation_engine/schemas/run_status.py
"""Non-result answers of get_result(): the run is still going, or it failed."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from typing_extensions import Literal


class PendingRun(BaseModel):
    request_id: str
    status: Literal["queued", "running"]
    submitted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None


class FailedRun(BaseModel):
    request_id: str
    status: Literal["failed"] = "failed"
    error_type: str  # "validation" | "infra" | "internal"
    message: str
    finished_at: Optional[datetime] = None
