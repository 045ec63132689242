"""Shared fixtures."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from cadence.logging import JSONLLogger, configure_logger
from cadence.scheduling import (
    Frequency,
    FrequencyKind,
    GoalCategory,
    GoalType,
    ScheduleSuggestion,
    SchedulingGoal,
)
from cadence.storage import SchedulerStore

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def event_log(tmp_path: Path) -> JSONLLogger:
    """Point the global JSONL logger at a temporary directory."""
    return configure_logger(tmp_path / "logs")


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store(tmp_path: Path) -> SchedulerStore:
    """Create a SchedulerStore with a temporary database."""
    store = SchedulerStore(tmp_path / "test_cadence.db")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def completion() -> AsyncMock:
    """Completion Service fake; set ``completion.complete.return_value``."""
    mock = AsyncMock()
    mock.complete = AsyncMock(return_value="")
    return mock


@pytest.fixture
def calendar() -> AsyncMock:
    """Calendar Service fake with no events and a fixed created-event id."""
    mock = AsyncMock()
    mock.list_events = AsyncMock(return_value=[])
    mock.create_event = AsyncMock(return_value="evt_123")
    return mock


@pytest.fixture
def make_goal():
    """Factory for SchedulingGoal values."""

    def _make(goal_id: str = "goal_1", user_id: str = "user_1", **overrides) -> SchedulingGoal:
        fields = dict(
            id=goal_id,
            user_id=user_id,
            goal_type=GoalType(GoalCategory.EXERCISE),
            description="Run three times a week",
            frequency=Frequency(FrequencyKind.WEEKLY),
            duration_minutes=45,
            created_at=NOW,
        )
        fields.update(overrides)
        return SchedulingGoal(**fields)

    return _make


@pytest.fixture
def make_suggestion():
    """Factory for ScheduleSuggestion values starting one day after NOW."""

    def _make(
        suggestion_id: str = "suggestion_1", goal_id: str = "goal_1", **overrides
    ) -> ScheduleSuggestion:
        start = overrides.pop("start_time", NOW + timedelta(days=1))
        fields = dict(
            id=suggestion_id,
            goal_id=goal_id,
            title="Morning run",
            start_time=start,
            end_time=overrides.pop("end_time", start + timedelta(minutes=45)),
            created_at=NOW,
            confidence_score=0.8,
            reasoning="Free morning",
        )
        fields.update(overrides)
        return ScheduleSuggestion(**fields)

    return _make
