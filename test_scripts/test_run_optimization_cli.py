"""Fixture loading and the run_optimization command-line entry point."""
import json
from pathlib import Path

import pytest

from allocation_engine.errors import ValidationError
from allocation_engine.schemas.request import ResourceFilter
from allocation_engine.services.fixtures import load_fixture, parse_fixture
from scripts.run_optimization import main

SAMPLE = Path(__file__).resolve().parent.parent / "fixtures" / "sample.json"


def test_sample_fixture_parses():
    fixture = load_fixture(SAMPLE)
    assert [t.task_id for t in fixture.tasks] == ["T1", "T2", "T3"]
    assert [r.resource_id for r in fixture.resources] == ["R1", "R2"]
    assert fixture.request["request_id"] == "sample-001"
    projects, resources = fixture.repositories()
    assert len(resources.get_resources(ResourceFilter())) == 2


def test_invalid_fixture_rejected():
    with pytest.raises(ValidationError):
        parse_fixture({"tasks": [{"task_id": "T1"}]})
    with pytest.raises(FileNotFoundError):
        load_fixture("does/not/exist.json")


def test_cli_writes_result(tmp_path, capsys):
    out = tmp_path / "result.json"
    code = main(["--input", str(SAMPLE), "--generations", "5", "--population", "10", "--seed", "7", "--output", str(out)])
    assert code == 0
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["request_id"] == "sample-001"
    assert payload["feasible"] is True
    assert payload["performance_metrics"]["generations_run"] <= 5
    assert "sample-001" in capsys.readouterr().out


def test_cli_rejects_missing_fixture(tmp_path):
    assert main(["--input", str(tmp_path / "nope.json")]) == 2


def test_cli_rejects_invalid_request(tmp_path):
    data = json.loads(SAMPLE.read_text(encoding="utf-8"))
    data["request"]["project_ids"] = []
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps(data), encoding="utf-8")
    assert main(["--input", str(bad)]) == 2
