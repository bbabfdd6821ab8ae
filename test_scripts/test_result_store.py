"""SQLAlchemy ResultStore against an in-memory SQLite schema."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from allocation_engine.db.models import OptimizationRunRecord, RecommendationDecision
from allocation_engine.errors import InfraError
from allocation_engine.schemas.request import OptimizationRequest
from allocation_engine.services.result_store import SqlAlchemyResultStore


@pytest.fixture
def computed(orchestrator, request_payload):
    return orchestrator.run(request_payload), OptimizationRequest.model_validate(request_payload)


def test_save_and_get_roundtrip(session_factory, computed):
    result, request = computed
    store = SqlAlchemyResultStore(session_factory)
    ack = store.save(result, request)
    assert ack.request_id == "req-001"

    loaded = store.get("req-001")
    assert loaded is not None
    assert loaded.model_dump(mode="json") == result.model_dump(mode="json")

    with session_factory() as db:
        row = db.query(OptimizationRunRecord).filter_by(request_id="req-001").one()
        assert row.status == result.status
        assert row.goal == "balance_cost_time"
        assert row.request_json["project_ids"] == ["P1"]


def test_save_is_an_upsert(session_factory, computed):
    result, request = computed
    store = SqlAlchemyResultStore(session_factory)
    store.save(result, request)
    store.save(result.model_copy(update={"confidence": 0.1}), request)
    with session_factory() as db:
        assert db.query(OptimizationRunRecord).count() == 1
    assert store.get("req-001").confidence == 0.1


def test_unknown_request_returns_none(session_factory):
    assert SqlAlchemyResultStore(session_factory).get("missing") is None


def test_recommendation_decisions(session_factory, computed):
    result, request = computed
    store = SqlAlchemyResultStore(session_factory)
    store.save(result, request)

    assert store.set_recommendation_status("rec:req-001:T2", "accepted") == "req-001"
    assert store.set_recommendation_status("rec:req-001:T2", "rejected") == "req-001"
    assert store.set_recommendation_status("rec:other:T9", "accepted") is None

    with session_factory() as db:
        assert db.query(RecommendationDecision).count() == 1
    statuses = {r.task_id: r.status for r in store.get("req-001").recommendations}
    assert statuses["T2"] == "rejected"
    assert statuses["T1"] == "pending"


def test_decision_only_looks_at_the_owning_run(session_factory, computed):
    result, request = computed
    store = SqlAlchemyResultStore(session_factory)
    store.save(result, request)
    store.record_failure("req-bad", "infra: project store unavailable")

    # the run exists but has no such task
    assert store.set_recommendation_status("rec:req-001:T9", "accepted") is None
    # the run failed and carries no result
    assert store.set_recommendation_status("rec:req-bad:T1", "accepted") is None
    # not a recommendation id
    assert store.set_recommendation_status("req-001:T1", "accepted") is None
    with session_factory() as db:
        assert db.query(RecommendationDecision).count() == 0


def test_record_failure(session_factory):
    store = SqlAlchemyResultStore(session_factory)
    store.record_failure("req-bad", "infra: project store unavailable")
    with session_factory() as db:
        row = db.query(OptimizationRunRecord).filter_by(request_id="req-bad").one()
        assert row.status == "failed"
        assert row.error_text.startswith("infra:")
    assert store.get("req-bad") is None


def test_database_errors_become_infra_errors(computed):
    result, _ = computed
    # no tables created
    engine = create_engine("sqlite://", future=True)
    store = SqlAlchemyResultStore(sessionmaker(bind=engine, future=True))
    with pytest.raises(InfraError):
        store.save(result)
    with pytest.raises(InfraError):
        store.get("req-001")
