# allocation_engine/services/collaborators.py
"""
Collaborator interfaces consumed by the Orchestrator, plus in-memory
implementations used by tests, the CLI and local runs.

Implementations signal storage/transport failures by raising InfraError;
the Orchestrator owns retries.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol

from allocation_engine.schemas.domain import Resource, Task
from allocation_engine.schemas.request import OptimizationRequest, ResourceFilter, TimeHorizon
from allocation_engine.schemas.result import OptimizationResult, RecommendationStatus, owning_request_id


@dataclass(frozen=True)
class SaveAck:
    request_id: str
    saved_at: datetime


class ProjectRepository(Protocol):
    def get_tasks(self, project_ids: List[str], time_horizon: TimeHorizon) -> List[Task]:  # pragma: no cover - interface only
        ...


class ResourceRepository(Protocol):
    def get_resources(self, resource_filter: ResourceFilter) -> List[Resource]:  # pragma: no cover - interface only
        ...


class ResultStore(Protocol):
    def save(
        self, result: OptimizationResult, request: Optional[OptimizationRequest] = None
    ) -> SaveAck:  # pragma: no cover - interface only
        ...

    def get(self, request_id: str) -> Optional[OptimizationResult]:  # pragma: no cover - interface only
        ...

    def set_recommendation_status(
        self, recommendation_id: str, status: RecommendationStatus
    ) -> Optional[str]:  # pragma: no cover - interface only
        """Record a decision; returns the owning request id, or None when the recommendation is unknown."""
        ...

    def record_failure(self, request_id: str, error_text: str) -> None:  # pragma: no cover - interface only
        ...


def _in_horizon(task: Task, horizon: TimeHorizon) -> bool:
    if task.earliest_start is not None and task.earliest_start >= horizon.end:
        return False
    if task.deadline is not None and task.deadline < horizon.start:
        return False
    return True


class InMemoryProjectRepository:
    def __init__(self, tasks: Iterable[Task]) -> None:
        self._tasks = list(tasks)

    def get_tasks(self, project_ids: List[str], time_horizon: TimeHorizon) -> List[Task]:
        wanted = set(project_ids)
        return [t for t in self._tasks if t.project_id in wanted and _in_horizon(t, time_horizon)]


class InMemoryResourceRepository:
    def __init__(self, resources: Iterable[Resource]) -> None:
        self._resources = list(resources)

    def get_resources(self, resource_filter: ResourceFilter) -> List[Resource]:
        out: List[Resource] = []
        for r in self._resources:
            if resource_filter.resource_types and r.resource_type not in resource_filter.resource_types:
                continue
            if resource_filter.resource_ids and r.resource_id not in resource_filter.resource_ids:
                continue
            if resource_filter.locations and r.location not in resource_filter.locations:
                continue
            out.append(r)
        return out


class InMemoryResultStore:
    """Thread-safe dict-backed store; results are kept as JSON so readers never share instances."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._results: Dict[str, dict] = {}
        self._decisions: Dict[str, RecommendationStatus] = {}
        self.failures: Dict[str, str] = {}

    def save(self, result: OptimizationResult, request: Optional[OptimizationRequest] = None) -> SaveAck:
        payload = result.model_dump(mode="json")
        with self._lock:
            self._results[result.request_id] = payload
        return SaveAck(request_id=result.request_id, saved_at=datetime.now(timezone.utc))

    def get(self, request_id: str) -> Optional[OptimizationResult]:
        with self._lock:
            payload = self._results.get(request_id)
            decisions = dict(self._decisions)
        if payload is None:
            return None
        result = OptimizationResult.model_validate(payload)
        for rec in result.recommendations:
            if rec.recommendation_id in decisions:
                rec.status = decisions[rec.recommendation_id]
        return result

    def set_recommendation_status(self, recommendation_id: str, status: RecommendationStatus) -> Optional[str]:
        request_id = owning_request_id(recommendation_id)
        with self._lock:
            payload = self._results.get(request_id) if request_id else None
            if payload is None:
                return None
            if not any(r["recommendation_id"] == recommendation_id for r in payload.get("recommendations", [])):
                return None
            self._decisions[recommendation_id] = status
        return request_id

    def record_failure(self, request_id: str, error_text: str) -> None:
        with self._lock:
            self.failures[request_id] = error_text


__all__ = [
    "SaveAck",
    "ProjectRepository",
    "ResourceRepository",
    "ResultStore",
    "InMemoryProjectRepository",
    "InMemoryResourceRepository",
    "InMemoryResultStore",
]
