# allocation_engine/services/fixtures.py
"""
JSON fixture loading for local runs.

A fixture file holds the collaborator data and, optionally, a request:

    {
      "tasks": [ {Task}, ... ],
      "resources": [ {Resource}, ... ],
      "request": { OptimizationRequest }   # optional
    }
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from allocation_engine.errors import ValidationError
from allocation_engine.schemas.domain import Resource, Task
from allocation_engine.services.collaborators import InMemoryProjectRepository, InMemoryResourceRepository


@dataclass
class Fixture:
    tasks: List[Task] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)
    request: Optional[Dict[str, Any]] = None

    def repositories(self):
        return InMemoryProjectRepository(self.tasks), InMemoryResourceRepository(self.resources)


def parse_fixture(data: Dict[str, Any]) -> Fixture:
    try:
        tasks = [Task.model_validate(t) for t in data.get("tasks") or []]
        resources = [Resource.model_validate(r) for r in data.get("resources") or []]
    except PydanticValidationError as exc:
        errors = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
        raise ValidationError("Invalid fixture: " + "; ".join(errors), errors=errors) from exc
    request = data.get("request")
    if request is not None and not isinstance(request, dict):
        raise ValidationError("Invalid fixture: 'request' must be an object")
    return Fixture(tasks=tasks, resources=resources, request=request)


def load_fixture(path: Union[str, Path]) -> Fixture:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Fixture not found: {p}")
    with p.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValidationError(f"Invalid fixture {p}: top-level JSON must be an object")
    return parse_fixture(data)


__all__ = ["Fixture", "parse_fixture", "load_fixture"]
