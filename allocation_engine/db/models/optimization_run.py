# allocation_engine/db/models/optimization_run.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text

from allocation_engine.db.base import Base


class OptimizationRunRecord(Base):
    """One persisted optimization run: the request, its outcome and timestamps."""

    __tablename__ = "optimization_runs"

    id = Column(Integer, primary_key=True, index=True)

    # Public identifier supplied by the caller
    request_id = Column(String(100), unique=True, index=True, nullable=False)

    status = Column(String(20), index=True, nullable=False, default="success")
    requested_by = Column(String(255), nullable=True)
    goal = Column(String(50), nullable=True)

    feasible = Column(Boolean, nullable=True)
    completed = Column(Boolean, nullable=True)

    # Request + outcome
    request_json = Column(JSON, nullable=True)
    result_json = Column(JSON, nullable=True)
    error_text = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)


class RecommendationDecision(Base):
    """Accept/reject decision on one recommendation; re-applied when a result is read back."""

    __tablename__ = "recommendation_decisions"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(String(100), index=True, nullable=False)
    recommendation_id = Column(String(255), unique=True, index=True, nullable=False)
    status = Column(String(20), nullable=False)
    decided_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
