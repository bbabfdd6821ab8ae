"""HTTP surface: shared-secret auth, submit/poll and recommendation decisions."""
import time

import pytest
from fastapi.testclient import TestClient

from conftest import make_request
from allocation_engine.config import settings
from allocation_engine.main import create_app

SECRET = "test-secret"
HEADERS = {"X-Allocation-Engine-Secret": SECRET}


@pytest.fixture
def client(orchestrator, monkeypatch):
    monkeypatch.setattr(settings, "API_SHARED_SECRET", SECRET)
    with TestClient(create_app(orchestrator)) as c:
        yield c


def _poll(client, request_id, timeout=30.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/optimizations/{request_id}", headers=HEADERS).json()
        if body["status"] not in ("queued", "running"):
            return body
        time.sleep(0.02)
    raise AssertionError(f"run {request_id} did not finish")


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_missing_or_wrong_secret_is_unauthorized(client):
    assert client.post("/optimizations", json=make_request()).status_code == 401
    bad = {"X-Allocation-Engine-Secret": "nope"}
    assert client.get("/optimizations/req-001", headers=bad).status_code == 401


def test_unconfigured_secret_fails_closed(orchestrator, monkeypatch):
    monkeypatch.setattr(settings, "API_SHARED_SECRET", "")
    with TestClient(create_app(orchestrator)) as c:
        resp = c.post("/optimizations", json=make_request(), headers=HEADERS)
    assert resp.status_code == 500


def test_invalid_payload_is_400(client):
    resp = client.post("/optimizations", json=make_request(project_ids=[]), headers=HEADERS)
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert any("project_ids" in e for e in detail["errors"])


def test_submit_poll_and_decide(client):
    resp = client.post("/optimizations", json=make_request(), headers=HEADERS)
    assert resp.status_code == 202
    assert resp.json() == {"request_id": "req-001", "status": "queued"}

    body = _poll(client, "req-001")
    assert body["status"] == "success"
    assert body["result"]["feasible"] is True
    assert len(body["result"]["recommendations"]) == 3

    resp = client.post("/optimizations/req-001/recommendations/rec:req-001:T1/accept", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["recommendation"]["status"] == "accepted"

    resp = client.post("/optimizations/req-001/recommendations/rec:req-001:T3/reject", headers=HEADERS)
    assert resp.json()["recommendation"]["status"] == "rejected"

    statuses = {
        r["task_id"]: r["status"]
        for r in client.get("/optimizations/req-001", headers=HEADERS).json()["result"]["recommendations"]
    }
    assert statuses == {"T1": "accepted", "T2": "pending", "T3": "rejected"}


def test_recommendation_of_another_request_is_404(client):
    client.post("/optimizations", json=make_request(), headers=HEADERS)
    _poll(client, "req-001")
    resp = client.post("/optimizations/req-002/recommendations/rec:req-001:T1/accept", headers=HEADERS)
    assert resp.status_code == 404


def test_unknown_request_is_404(client):
    assert client.get("/optimizations/unknown", headers=HEADERS).status_code == 404
    resp = client.post("/optimizations/unknown/recommendations/rec:unknown:T1/accept", headers=HEADERS)
    assert resp.status_code == 404


def test_failed_run_is_reported(client):
    resp = client.post("/optimizations", json=make_request("req-none", project_ids=["NOPE"]), headers=HEADERS)
    assert resp.status_code == 202
    body = _poll(client, "req-none")
    assert body["status"] == "failed"
    assert body["error_type"] == "validation"


def test_cancel_unknown_run(client):
    resp = client.post("/optimizations/nothing/cancel", headers=HEADERS)
    assert resp.json() == {"request_id": "nothing", "cancelled": False}
