#!/usr/bin/env python3
"""Test script to verify JSON logging configuration works correctly."""

import io
import json
import logging

import pytest

from allocation_engine.config import setup_json_logging

# Get the logger under the engine's namespace
logger = logging.getLogger("allocation_engine.test")


@pytest.fixture
def json_logs():
    buffer = io.StringIO()
    setup_json_logging(log_level=logging.DEBUG, stream=buffer)

    def read():
        lines = buffer.getvalue().splitlines()
        return [json.loads(line) for line in lines if line.strip()]

    return read


def test_basic_logging(json_logs):
    """Test basic logging without extra fields."""
    logger.info("Basic log message without extra fields")
    logger.warning("Warning message")

    records = json_logs()
    assert [r["message"] for r in records] == ["Basic log message without extra fields", "Warning message"]
    assert records[1]["levelname"] == "WARNING"
    # None-valued structured fields are dropped
    assert "request_id" not in records[0]
    assert "generation" not in records[0]


def test_logging_with_extra(json_logs):
    """Test logging with extra fields (common in optimizer runs)."""
    logger.info(
        "optimizer.generation",
        extra={
            "request_id": "req-001",
            "generation": 12,
            "best_fitness": 0.73,
            "violations": 0,
        },
    )

    (record,) = json_logs()
    assert record["message"] == "optimizer.generation"
    assert record["request_id"] == "req-001"
    assert record["generation"] == 12
    assert record["best_fitness"] == 0.73
    assert record["violations"] == 0
    assert record["name"] == "allocation_engine.test"


def test_partial_fields(json_logs):
    """Test with only some fields present."""
    logger.info("analysis.bottlenecks", extra={"request_id": "req-002", "count": 3})

    (record,) = json_logs()
    assert record["count"] == 3
    assert "total" not in record
    assert "reason" not in record


def test_setup_replaces_previous_handler():
    first, second = io.StringIO(), io.StringIO()
    setup_json_logging(log_level=logging.INFO, stream=first)
    setup_json_logging(log_level=logging.INFO, stream=second)

    logger.info("orchestrator.run_start", extra={"request_id": "req-003"})
    logger.debug("dropped below INFO")

    assert first.getvalue() == ""
    (line,) = second.getvalue().splitlines()
    assert json.loads(line)["request_id"] == "req-003"
    assert len(logging.getLogger("allocation_engine").handlers) == 1
