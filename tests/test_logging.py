"""Tests for JSONL logging."""

import json
from pathlib import Path

import pytest

from cadence import logging as event_logging
from cadence.logging import JSONLLogger, LogEntry


@pytest.fixture
def logger(tmp_path: Path) -> JSONLLogger:
    return JSONLLogger(log_dir=tmp_path / "events")


def read_lines(logger: JSONLLogger) -> list[dict]:
    with open(logger.log_path) as f:
        return [json.loads(line) for line in f]


def test_log_entry_to_dict():
    """Test LogEntry excludes None values."""
    entry = LogEntry(timestamp="2025-01-01T00:00:00Z", event="test")
    data = entry.to_dict()

    assert "timestamp" in data
    assert "event" in data
    assert "user_id" not in data  # None excluded
    assert "extra" not in data  # Empty dict excluded


def test_log_creates_file(logger: JSONLLogger):
    """Test that logging creates the log file."""
    logger.log("test_event")

    assert logger.log_path.exists()


def test_log_writes_jsonl(logger: JSONLLogger):
    """Test that logs are written in JSONL format."""
    logger.log("event1", user_id="u1")
    logger.log("event2", goal_id="g1", batch=3)

    entry1, entry2 = read_lines(logger)

    assert entry1["event"] == "event1"
    assert entry1["user_id"] == "u1"
    assert entry2["goal_id"] == "g1"
    assert entry2["extra"] == {"batch": 3}


def test_log_transition(logger: JSONLLogger):
    logger.log_transition("s1", "pending", "accepted", user_id="u1")

    [entry] = read_lines(logger)
    assert entry["event"] == "suggestion_transition"
    assert entry["suggestion_id"] == "s1"
    assert entry["extra"] == {"old_status": "pending", "new_status": "accepted"}


def test_log_operation_drops_error_on_success(logger: JSONLLogger):
    logger.log_operation("accept_suggestion", True, error="ignored")
    logger.log_operation("accept_suggestion", False, error="Calendar error: 500")

    ok, failed = read_lines(logger)
    assert "error" not in ok
    assert ok["extra"] == {"operation": "accept_suggestion", "success": True}
    assert failed["error"] == "Calendar error: 500"


def test_log_completion(logger: JSONLLogger):
    logger.log_completion("goal_extraction", True, duration_ms=12.5)

    [entry] = read_lines(logger)
    assert entry["event"] == "completion"
    assert entry["duration_ms"] == 12.5
    assert entry["extra"]["purpose"] == "goal_extraction"


def test_log_generation(logger: JSONLLogger):
    logger.log_generation("goal_1", 3, user_id="u1", duration_ms=40.0)

    [entry] = read_lines(logger)
    assert entry["event"] == "suggestions_generated"
    assert entry["goal_id"] == "goal_1"
    assert entry["extra"] == {"count": 3}


def test_set_user_id(logger: JSONLLogger):
    """Current user_id is applied unless overridden."""
    logger.set_user_id("owner")
    logger.log("a")
    logger.log("b", user_id="other")

    first, second = read_lines(logger)
    assert first["user_id"] == "owner"
    assert second["user_id"] == "other"


def test_rotation(tmp_path: Path):
    """Test log rotation when max size exceeded."""
    logger = JSONLLogger(log_dir=tmp_path, max_size_mb=0.0001)

    for i in range(20):
        logger.log(f"event_{i}", extra_data="x" * 50)

    assert len(list(tmp_path.glob("*.jsonl"))) > 1


def test_configure_logger_replaces_global(tmp_path: Path):
    configured = event_logging.configure_logger(tmp_path / "global")

    assert event_logging.get_logger() is configured
    assert configured.log_dir == tmp_path / "global"
