# allocation_engine/services/orchestrator.py
"""
Orchestrator: validates an OptimizationRequest, drives
features -> scoring -> genetic search -> schedule -> analysis -> scenarios,
assembles the OptimizationResult and hands it to the ResultStore.

Runs are request-scoped; the only state shared between runs is the run
ledger below guarded by one lock:
- in-flight markers, for both submit() and run(); a request id has at most one
  live run, so a second submit() returns the same id and run() raises
  RunInProgressError
- results that could not be persisted, and failures, each capped at
  ORCHESTRATOR_MAX_RETAINED_RUNS (oldest evicted first)
Persisted results are not kept: get_result() and recommendation decisions read
them back from the ResultStore. submit() after a completed run returns the
same id without starting another run.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from allocation_engine.config import Settings, settings as default_settings
from allocation_engine.errors import InfraError, NotFoundError, RunInProgressError, ValidationError
from allocation_engine.schemas.request import OptimizationRequest
from allocation_engine.schemas.result import OptimizationResult, Recommendation, RecommendationStatus
from allocation_engine.schemas.run_status import FailedRun, PendingRun
from allocation_engine.services.analysis import (
    RiskAnalyzer,
    ScenarioGenerator,
    build_metrics,
    build_recommendations,
    confidence_score,
    result_status,
    templates_from_settings,
)
from allocation_engine.services.collaborators import ProjectRepository, ResourceRepository, ResultStore
from allocation_engine.services.optimization import (
    CancellationToken,
    GeneticConfig,
    GeneticOptimizer,
    ProblemBuilder,
    evaluate,
)
from allocation_engine.services.scheduling import ScheduleBuilder, build_allocations
from allocation_engine.services.scoring import ScoringModel, get_model
from allocation_engine.utils.retry import call_with_retry

logger = logging.getLogger(__name__)


# ----------------------------
# Status constants
# ----------------------------
STATUS_QUEUED = "queued"
STATUS_RUNNING = "running"
STATUS_FAILED = "failed"

RunOutcome = Union[OptimizationResult, PendingRun, FailedRun]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_pydantic_errors(exc: PydanticValidationError) -> list:
    out = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        out.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return out


def _retain(ledger: "OrderedDict[str, Any]", key: str, value: Any, limit: int) -> None:
    ledger.pop(key, None)
    ledger[key] = value
    while len(ledger) > limit:
        ledger.popitem(last=False)


class Orchestrator:
    def __init__(
        self,
        project_repository: ProjectRepository,
        resource_repository: ResourceRepository,
        result_store: ResultStore,
        *,
        scoring_model: Optional[ScoringModel] = None,
        app_settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.projects = project_repository
        self.resources = resource_repository
        self.store = result_store
        self.settings = app_settings or default_settings
        self.scoring_model = scoring_model or get_model(self.settings.SCORING_MODEL)
        self.sleep = sleep

        self._lock = threading.Lock()
        self._in_flight: Dict[str, PendingRun] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._unpersisted: "OrderedDict[str, OptimizationResult]" = OrderedDict()
        self._failures: "OrderedDict[str, FailedRun]" = OrderedDict()
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.ORCHESTRATOR_MAX_CONCURRENT_RUNS,
            thread_name_prefix="optimization-run",
        )

    # ----------------------------
    # Public API
    # ----------------------------

    def validate(self, request: Union[OptimizationRequest, Mapping[str, Any]]) -> OptimizationRequest:
        """Parse/validate a request payload; pydantic failures become ValidationError."""
        if isinstance(request, OptimizationRequest):
            return request
        try:
            return OptimizationRequest.model_validate(request)
        except PydanticValidationError as exc:
            errors = _format_pydantic_errors(exc)
            raise ValidationError("Invalid optimization request: " + "; ".join(errors), errors=errors) from exc

    def submit(self, request: Union[OptimizationRequest, Mapping[str, Any]]) -> str:
        """Validate synchronously, then run in the background. Returns the request id."""
        req = self.validate(request)
        request_id = req.request_id
        with self._lock:
            known = request_id in self._in_flight or request_id in self._unpersisted
            failed = request_id in self._failures
        if known or (not failed and self._completed_in_store(request_id)):
            logger.info("orchestrator.duplicate_submit", extra={"request_id": request_id})
            return request_id

        with self._lock:
            # re-check: another submit may have registered while the store was read
            if request_id in self._in_flight:
                logger.info("orchestrator.duplicate_submit", extra={"request_id": request_id})
                return request_id
            token = self._register(request_id, STATUS_QUEUED)

        logger.info("orchestrator.submitted", extra={"request_id": request_id, "run_status": STATUS_QUEUED})
        self._executor.submit(self._run_in_background, req, token)
        return request_id

    def run(self, request: Union[OptimizationRequest, Mapping[str, Any]], cancel_token: Optional[CancellationToken] = None) -> OptimizationResult:
        """Synchronous run; raises ValidationError / InfraError / RunInProgressError, never raises on infeasibility."""
        req = self.validate(request)
        request_id = req.request_id
        with self._lock:
            pending = self._in_flight.get(request_id)
            if pending is not None:
                logger.info("orchestrator.duplicate_run", extra={"request_id": request_id, "run_status": pending.status})
                raise RunInProgressError(request_id, pending.status)
            token = self._register(request_id, STATUS_RUNNING, cancel_token)

        try:
            result = self._execute(req, token)
        except BaseException:
            with self._lock:
                self._release(request_id)
            raise
        self._finish(result)
        return result

    def get_result(self, request_id: str) -> RunOutcome:
        with self._lock:
            pending = self._in_flight.get(request_id)
            if pending is not None:
                return pending.model_copy()
            result = self._unpersisted.get(request_id)
            if result is not None:
                return result.model_copy(deep=True)
            failure = self._failures.get(request_id)
            if failure is not None:
                return failure

        stored = self._load(request_id)
        if stored is None:
            raise NotFoundError(f"Unknown request id: {request_id}")
        return stored

    def cancel(self, request_id: str) -> bool:
        """Ask an in-flight run to stop after the current generation; it returns best-so-far with completed=False."""
        with self._lock:
            token = self._tokens.get(request_id)
            if token is None or request_id not in self._in_flight:
                return False
        token.cancel()
        logger.info("orchestrator.cancel_requested", extra={"request_id": request_id})
        return True

    def accept_recommendation(self, recommendation_id: str) -> Recommendation:
        return self._set_recommendation_status(recommendation_id, "accepted")

    def reject_recommendation(self, recommendation_id: str) -> Recommendation:
        return self._set_recommendation_status(recommendation_id, "rejected")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ----------------------------
    # Internals
    # ----------------------------

    def _retry_kwargs(self, max_attempts: int) -> Dict[str, Any]:
        return {
            "max_attempts": max_attempts,
            "base_delay": self.settings.RETRY_BASE_DELAY_SECONDS,
            "max_total_seconds": self.settings.RETRY_MAX_TOTAL_SECONDS,
            "sleep": self.sleep,
        }

    def _register(self, request_id: str, status: str, token: Optional[CancellationToken] = None) -> CancellationToken:
        """Caller holds self._lock."""
        token = token or CancellationToken()
        self._failures.pop(request_id, None)
        self._unpersisted.pop(request_id, None)
        self._tokens[request_id] = token
        now = _now()
        self._in_flight[request_id] = PendingRun(
            request_id=request_id,
            status=status,
            submitted_at=now,
            started_at=now if status == STATUS_RUNNING else None,
        )
        return token

    def _release(self, request_id: str) -> None:
        """Caller holds self._lock."""
        self._in_flight.pop(request_id, None)
        self._tokens.pop(request_id, None)

    def _finish(self, result: OptimizationResult) -> None:
        with self._lock:
            if not result.persisted:
                _retain(self._unpersisted, result.request_id, result, self.settings.ORCHESTRATOR_MAX_RETAINED_RUNS)
            self._release(result.request_id)

    def _load(self, request_id: str) -> Optional[OptimizationResult]:
        return call_with_retry(
            lambda: self.store.get(request_id),
            operation="result_store.get",
            **self._retry_kwargs(self.settings.RESULT_STORE_MAX_ATTEMPTS),
        )

    def _completed_in_store(self, request_id: str) -> bool:
        try:
            return self._load(request_id) is not None
        except InfraError as exc:
            # store unreachable: treat as not yet run; the new run's own save is retried
            logger.warning("orchestrator.store_lookup_failed", extra={"request_id": request_id, "reason": str(exc)})
            return False

    def _run_in_background(self, request: OptimizationRequest, token: CancellationToken) -> None:
        request_id = request.request_id
        with self._lock:
            pending = self._in_flight.get(request_id)
            if pending is not None:
                self._in_flight[request_id] = pending.model_copy(update={"status": STATUS_RUNNING, "started_at": _now()})

        try:
            result = self._execute(request, token)
        except ValidationError as exc:
            self._record_failure(request_id, "validation", str(exc))
        except InfraError as exc:
            self._record_failure(request_id, "infra", str(exc))
        except Exception as exc:
            # A failed run must not take the executor thread (or other runs) down with it.
            logger.exception("orchestrator.run_crashed", extra={"request_id": request_id})
            self._record_failure(request_id, "internal", f"{type(exc).__name__}: {exc}")
        else:
            self._finish(result)

    def _record_failure(self, request_id: str, error_type: str, message: str) -> None:
        failure = FailedRun(request_id=request_id, error_type=error_type, message=message, finished_at=_now())
        with self._lock:
            _retain(self._failures, request_id, failure, self.settings.ORCHESTRATOR_MAX_RETAINED_RUNS)
            self._release(request_id)
        logger.error(
            "orchestrator.run_failed",
            extra={"request_id": request_id, "run_status": STATUS_FAILED, "reason": f"{error_type}: {message}"},
        )
        try:
            self.store.record_failure(request_id, f"{error_type}: {message}")
        except InfraError as exc:
            logger.warning("orchestrator.record_failure_failed", extra={"request_id": request_id, "reason": str(exc)})

    def _execute(self, request: OptimizationRequest, token: CancellationToken) -> OptimizationResult:
        cfg = self.settings
        started = time.monotonic()
        request_id = request.request_id
        logger.info("orchestrator.run_start", extra={"request_id": request_id, "run_status": STATUS_RUNNING})

        tasks = call_with_retry(
            lambda: self.projects.get_tasks(list(request.project_ids), request.time_horizon),
            operation="project_repository.get_tasks",
            **self._retry_kwargs(cfg.REPOSITORY_MAX_ATTEMPTS),
        )
        resources = call_with_retry(
            lambda: self.resources.get_resources(request.resource_filter),
            operation="resource_repository.get_resources",
            **self._retry_kwargs(cfg.REPOSITORY_MAX_ATTEMPTS),
        )

        # 1) Features + scoring (request-scoped, immutable)
        problem = ProblemBuilder(self.scoring_model, min_fraction=cfg.GA_MIN_FRACTION).build(request, tasks, resources)

        # 2) Genetic search
        seed = request.random_seed if request.random_seed is not None else cfg.GA_RANDOM_SEED
        ga_config = GeneticConfig.from_settings(cfg, request.genetic, seed=seed)
        timeout = request.timeout_seconds or cfg.OPTIMIZATION_TIMEOUT_SECONDS
        outcome = GeneticOptimizer(problem, ga_config).run(cancel_token=token, deadline=time.monotonic() + timeout)
        best = outcome.best.evaluation

        # 3) Schedule + allocations
        allocations = build_allocations(problem, best.placements)
        plan = ScheduleBuilder(problem).build(best, plan_id=f"plan_{request_id}")

        # 4) Analysis
        analyzer = RiskAnalyzer(problem, request, cfg)
        warnings = analyzer.warnings(best, plan)
        bottlenecks = analyzer.bottlenecks(best)

        baseline_r, baseline_f = problem.naive_genes()
        baseline = evaluate(problem, baseline_r, baseline_f)
        confidence = confidence_score(problem, outcome)
        metrics = build_metrics(problem, outcome, baseline, confidence)

        # 5) Scenarios + recommendations
        scenarios = ScenarioGenerator(problem.calendar, templates_from_settings(cfg)).generate(
            request_id,
            baseline_cost=best.total_cost,
            baseline_duration_hours=best.makespan,
            allocations=allocations,
            goal=request.goal,
            preferences=request.preferences,
        )
        recommendations = build_recommendations(problem, best, allocations, request.goal)

        result = OptimizationResult(
            result_id=f"result_{request_id}",
            request_id=request_id,
            status=result_status(outcome, warnings),  # type: ignore[arg-type]
            feasible=outcome.feasible,
            unsatisfiable_task_ids=outcome.unsatisfiable_task_ids,
            completed=outcome.completed,
            persisted=False,
            allocations=allocations,
            scheduling_plan=plan,
            performance_metrics=metrics,
            recommendations=recommendations,
            warnings=warnings,
            bottlenecks=bottlenecks,
            scenarios=scenarios,
            confidence=confidence,
            computed_at=_now(),
            computation_time_ms=int((time.monotonic() - started) * 1000),
        )

        # 6) Persist (bounded retries; the computed result survives a store outage)
        result.persisted = True
        try:
            call_with_retry(
                lambda: self.store.save(result, request),
                operation="result_store.save",
                **self._retry_kwargs(cfg.RESULT_STORE_MAX_ATTEMPTS),
            )
        except InfraError as exc:
            result.persisted = False
            logger.error("result_store.save_failed", extra={"request_id": request_id, "reason": str(exc)})

        logger.info(
            "orchestrator.run_finished",
            extra={
                "request_id": request_id,
                "run_status": result.status,
                "best_fitness": best.fitness,
                "violations": best.violations,
                "elapsed_ms": result.computation_time_ms,
            },
        )
        return result

    def _set_recommendation_status(self, recommendation_id: str, status: RecommendationStatus) -> Recommendation:
        updated: Optional[Recommendation] = None
        with self._lock:
            for result in self._unpersisted.values():
                rec = result.find_recommendation(recommendation_id)
                if rec is not None:
                    rec.status = status
                    updated = rec.model_copy()
                    break

        if updated is None:
            owner = call_with_retry(
                lambda: self.store.set_recommendation_status(recommendation_id, status),
                operation="result_store.set_recommendation_status",
                **self._retry_kwargs(self.settings.RESULT_STORE_MAX_ATTEMPTS),
            )
            stored = self._load(owner) if owner is not None else None
            rec = stored.find_recommendation(recommendation_id) if stored is not None else None
            if rec is None:
                raise NotFoundError(f"Unknown recommendation id: {recommendation_id}")
            updated = rec

        logger.info(
            "orchestrator.recommendation_status",
            extra={"run_status": status, "reason": recommendation_id},
        )
        return updated


__all__ = [
    "Orchestrator",
    "RunOutcome",
    "STATUS_QUEUED",
    "STATUS_RUNNING",
    "STATUS_FAILED",
]
