# allocation_engine/services/result_store.py
"""
SQLAlchemy-backed ResultStore.

Results are stored as JSON on optimization_runs (upsert by request id);
accept/reject decisions live in recommendation_decisions and are re-applied
onto the recommendations when a result is read back. Any SQLAlchemyError is
raised as InfraError so the Orchestrator's retry policy applies.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from allocation_engine.db.models.optimization_run import OptimizationRunRecord, RecommendationDecision
from allocation_engine.errors import InfraError
from allocation_engine.schemas.request import OptimizationRequest
from allocation_engine.schemas.result import OptimizationResult, RecommendationStatus, owning_request_id
from allocation_engine.services.collaborators import SaveAck

logger = logging.getLogger(__name__)


class SqlAlchemyResultStore:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def save(self, result: OptimizationResult, request: Optional[OptimizationRequest] = None) -> SaveAck:
        now = datetime.now(timezone.utc)
        db = self.session_factory()
        try:
            run = db.query(OptimizationRunRecord).filter(OptimizationRunRecord.request_id == result.request_id).one_or_none()
            if run is None:
                run = OptimizationRunRecord(request_id=result.request_id, created_at=now)
                db.add(run)
            run.status = result.status  # type: ignore[assignment]
            run.feasible = result.feasible  # type: ignore[assignment]
            run.completed = result.completed  # type: ignore[assignment]
            run.result_json = result.model_dump(mode="json")  # type: ignore[assignment]
            run.error_text = None  # type: ignore[assignment]
            if request is not None:
                run.request_json = request.model_dump(mode="json")  # type: ignore[assignment]
                run.requested_by = request.requested_by  # type: ignore[assignment]
                run.goal = request.goal.value  # type: ignore[assignment]
            run.finished_at = result.computed_at or now  # type: ignore[assignment]
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning(
                "result_store.save_failed",
                extra={"request_id": result.request_id, "reason": str(exc)},
            )
            raise InfraError(f"Failed to save result {result.request_id}: {exc}", operation="result_store.save") from exc
        finally:
            db.close()

        logger.info("result_store.saved", extra={"request_id": result.request_id})
        return SaveAck(request_id=result.request_id, saved_at=now)

    def record_failure(self, request_id: str, error_text: str) -> None:
        now = datetime.now(timezone.utc)
        db = self.session_factory()
        try:
            run = db.query(OptimizationRunRecord).filter(OptimizationRunRecord.request_id == request_id).one_or_none()
            if run is None:
                run = OptimizationRunRecord(request_id=request_id, created_at=now)
                db.add(run)
            run.status = "failed"  # type: ignore[assignment]
            run.error_text = error_text  # type: ignore[assignment]
            run.finished_at = now  # type: ignore[assignment]
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise InfraError(f"Failed to record failure for {request_id}: {exc}", operation="result_store.record_failure") from exc
        finally:
            db.close()

    def get(self, request_id: str) -> Optional[OptimizationResult]:
        db = self.session_factory()
        try:
            run = db.query(OptimizationRunRecord).filter(OptimizationRunRecord.request_id == request_id).one_or_none()
            if run is None or run.result_json is None:
                return None
            decisions = {
                d.recommendation_id: d.status
                for d in db.query(RecommendationDecision).filter(RecommendationDecision.request_id == request_id).all()
            }
            payload = dict(run.result_json)
        except SQLAlchemyError as exc:
            raise InfraError(f"Failed to load result {request_id}: {exc}", operation="result_store.get") from exc
        finally:
            db.close()

        result = OptimizationResult.model_validate(payload)
        for rec in result.recommendations:
            if rec.recommendation_id in decisions:
                rec.status = decisions[rec.recommendation_id]
        return result

    def set_recommendation_status(self, recommendation_id: str, status: RecommendationStatus) -> Optional[str]:
        db = self.session_factory()
        try:
            request_id = self._owning_request(db, recommendation_id)
            if request_id is None:
                return None
            decision = (
                db.query(RecommendationDecision)
                .filter(RecommendationDecision.recommendation_id == recommendation_id)
                .one_or_none()
            )
            if decision is None:
                decision = RecommendationDecision(request_id=request_id, recommendation_id=recommendation_id)
                db.add(decision)
            decision.status = status  # type: ignore[assignment]
            decision.decided_at = datetime.now(timezone.utc)  # type: ignore[assignment]
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise InfraError(
                f"Failed to record decision for {recommendation_id}: {exc}",
                operation="result_store.set_recommendation_status",
            ) from exc
        finally:
            db.close()

        logger.info("result_store.decision_recorded", extra={"request_id": request_id, "run_status": status})
        return request_id

    @staticmethod
    def _owning_request(db: Session, recommendation_id: str) -> Optional[str]:
        request_id = owning_request_id(recommendation_id)
        if request_id is None:
            return None
        run = db.query(OptimizationRunRecord).filter(OptimizationRunRecord.request_id == request_id).one_or_none()
        if run is None or run.result_json is None:
            return None
        recs = run.result_json.get("recommendations", [])
        if not any(r.get("recommendation_id") == recommendation_id for r in recs):
            return None
        return request_id


__all__ = ["SqlAlchemyResultStore"]
