"""Tests for CandidateGenerator."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from cadence.calendar import CalendarEvent
from cadence.completion import CompletionError, CompletionTimeout
from cadence.scheduling import (
    CandidateGenerator,
    ScheduleRequest,
    SuggestionStatus,
    TimePreference,
    bind_goal,
)


@pytest.fixture
def generator(completion: AsyncMock) -> CandidateGenerator:
    return CandidateGenerator(completion)


def item(start: str, end: str, confidence=0.8, **extra) -> dict:
    data = {
        "title": "Run",
        "description": "Easy run",
        "start_time": start,
        "end_time": end,
        "confidence_score": confidence,
        "reasoning": "Free slot",
    }
    data.update(extra)
    return data


def response(*items) -> str:
    return json.dumps({"suggestions": list(items)})


class TestGenerate:
    @pytest.mark.asyncio
    async def test_valid_batch(self, generator, completion, now):
        completion.complete.return_value = response(
            item("2025-03-11T07:00:00Z", "2025-03-11T07:45:00Z", 0.9),
            item("2025-03-12T07:00:00Z", "2025-03-12T07:45:00Z", 0.7),
        )

        suggestions = await generator.generate("Run", [], [], 45, now=now)

        assert len(suggestions) == 2
        first = suggestions[0]
        assert first.title == "Run"
        assert first.start_time == datetime(2025, 3, 11, 7, 0, tzinfo=timezone.utc)
        assert first.status is SuggestionStatus.PENDING
        assert first.created_at == now
        assert first.goal_id == ""

    @pytest.mark.asyncio
    async def test_item_missing_start_dropped(self, generator, completion, now):
        """1 of 3 items lacks start_time: exactly 2 come back."""
        broken = item("x", "2025-03-12T08:00:00Z")
        del broken["start_time"]
        completion.complete.return_value = response(
            item("2025-03-11T07:00:00Z", "2025-03-11T08:00:00Z"),
            broken,
            item("2025-03-13T07:00:00Z", "2025-03-13T08:00:00Z"),
        )

        suggestions = await generator.generate("Run", [], [], 60, now=now)

        assert len(suggestions) == 2

    @pytest.mark.asyncio
    async def test_unparseable_and_inverted_times_dropped(self, generator, completion, now):
        completion.complete.return_value = response(
            item("tomorrow morning", "2025-03-11T08:00:00Z"),
            item("2025-03-11T09:00:00Z", "2025-03-11T08:00:00Z"),
            item("2025-03-11T07:00:00", "2025-03-11T08:00:00"),
            item("2025-03-11T07:00:00Z", "2025-03-11T08:00:00Z"),
        )

        suggestions = await generator.generate("Run", [], [], 60, now=now)

        assert len(suggestions) == 1

    @pytest.mark.asyncio
    async def test_confidence_clamped(self, generator, completion, now):
        completion.complete.return_value = response(
            item("2025-03-11T07:00:00Z", "2025-03-11T08:00:00Z", 1.5),
            item("2025-03-12T07:00:00Z", "2025-03-12T08:00:00Z", -0.2),
        )

        suggestions = await generator.generate("Run", [], [], 60, now=now)

        assert [s.confidence_score for s in suggestions] == [1.0, 0.0]

    @pytest.mark.asyncio
    async def test_missing_fields_defaulted(self, generator, completion, now):
        completion.complete.return_value = response(
            {"start_time": "2025-03-11T07:00:00Z", "end_time": "2025-03-11T08:00:00Z"}
        )

        [suggestion] = await generator.generate("Play guitar", [], [], 60, now=now)

        assert suggestion.title == "Play guitar"
        assert suggestion.confidence_score == 0.5
        assert suggestion.description == ""
        assert suggestion.reasoning == ""

    @pytest.mark.asyncio
    async def test_ranked_and_capped_to_batch_size(self, generator, completion, now):
        completion.complete.return_value = response(
            *[
                item(f"2025-03-1{d}T07:00:00Z", f"2025-03-1{d}T08:00:00Z", c)
                for d, c in [(1, 0.2), (2, 0.9), (3, 0.5), (4, 0.7), (5, 0.1)]
            ]
        )

        suggestions = await generator.generate("Run", [], [], 60, now=now)

        assert [s.confidence_score for s in suggestions] == [0.9, 0.7, 0.5]

    @pytest.mark.asyncio
    async def test_unique_ids(self, generator, completion, now):
        completion.complete.return_value = response(
            item("2025-03-11T07:00:00Z", "2025-03-11T08:00:00Z"),
            item("2025-03-12T07:00:00Z", "2025-03-12T08:00:00Z"),
        )

        first = await generator.generate("Run", [], [], 60, now=now)
        second = await generator.generate("Run", [], [], 60, now=now)

        ids = [s.id for s in first + second]
        assert len(set(ids)) == 4
        assert all(i.startswith("suggestion_") for i in ids)

    @pytest.mark.asyncio
    async def test_no_json_is_empty(self, generator, completion, now):
        completion.complete.return_value = "Sorry, I can't help with that."
        assert await generator.generate("Run", [], [], 60, now=now) == []

    @pytest.mark.asyncio
    async def test_missing_suggestions_key_is_empty(self, generator, completion, now):
        completion.complete.return_value = '{"slots": []}'
        assert await generator.generate("Run", [], [], 60, now=now) == []

    @pytest.mark.asyncio
    async def test_salvages_items_from_broken_response(self, generator, completion, now):
        """A truncated response still yields the items that decode."""
        good = json.dumps(item("2025-03-11T07:00:00Z", "2025-03-11T08:00:00Z"))
        completion.complete.return_value = (
            '{"suggestions": [' + good + ', {"title": "Run", "start_time": "2025-03-1'
        )

        suggestions = await generator.generate("Run", [], [], 60, now=now)

        assert len(suggestions) == 1

    @pytest.mark.asyncio
    async def test_timeout_is_empty_batch(self, generator, completion, now):
        completion.complete.side_effect = CompletionTimeout("slow")
        assert await generator.generate("Run", [], [], 60, now=now) == []

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, generator, completion, now):
        completion.complete.side_effect = CompletionError("down")
        with pytest.raises(CompletionError):
            await generator.generate("Run", [], [], 60, now=now)


class TestPrompt:
    @pytest.mark.asyncio
    async def test_prompt_carries_context(self, generator, completion, now):
        completion.complete.return_value = "{}"
        events = [
            CalendarEvent(
                id="e1",
                summary="Dentist",
                start=now + timedelta(hours=2),
                end=now + timedelta(hours=3),
            )
        ]
        preferences = [TimePreference("07:00", "09:00")]

        await generator.generate("Run", events, preferences, 45, now=now)

        args, kwargs = completion.complete.call_args
        prompt = args[1]
        assert "Dentist" in prompt
        assert "07:00" in prompt
        assert "45 minutes" in prompt
        assert "2025-03-10T09:00:00Z" in prompt
        assert "2025-03-17T09:00:00Z" in prompt
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_generate_for_request(self, generator, completion, now):
        completion.complete.return_value = response(
            item("2025-03-11T07:00:00Z", "2025-03-11T08:00:00Z")
        )
        request = ScheduleRequest(goal_description="Run", duration_minutes=60)

        suggestions = await generator.generate_for(request, now=now)

        assert len(suggestions) == 1


def test_batch_size_must_be_positive(completion):
    with pytest.raises(ValueError):
        CandidateGenerator(completion, batch_size=0)


def test_bind_goal(make_suggestion):
    bound = bind_goal([make_suggestion(goal_id="")], "goal_9")
    assert bound[0].goal_id == "goal_9"
