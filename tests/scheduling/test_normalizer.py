"""Tests for GoalNormalizer."""

import json
from unittest.mock import AsyncMock

import pytest

from cadence.completion import CompletionError, CompletionTimeout
from cadence.scheduling import (
    FrequencyKind,
    GoalCategory,
    GoalNormalizer,
    TimePreference,
    Weekday,
)
from cadence.scheduling.normalizer import goal_id_for


@pytest.fixture
def normalizer(completion: AsyncMock) -> GoalNormalizer:
    return GoalNormalizer(completion)


def goal_json(**fields) -> str:
    return json.dumps(fields)


class TestNormalize:
    @pytest.mark.asyncio
    async def test_full_extraction(self, normalizer, completion, now):
        """A complete response maps onto every field."""
        completion.complete.return_value = goal_json(
            goal_type="exercise",
            frequency="weekly",
            duration_minutes=45,
            preferred_times=[
                {"day_of_week": "monday", "start_time": "07:00", "end_time": "08:00"},
                {"day_of_week": None, "start_time": "18:00", "end_time": "20:00"},
            ],
        )

        goal = await normalizer.normalize("Run on mornings", "user_1", now=now)

        assert goal.goal_type.category is GoalCategory.EXERCISE
        assert goal.frequency.kind is FrequencyKind.WEEKLY
        assert goal.duration_minutes == 45
        assert goal.preferred_times == (
            TimePreference("07:00", "08:00", Weekday.MONDAY),
            TimePreference("18:00", "20:00", None),
        )
        assert goal.description == "Run on mornings"
        assert goal.user_id == "user_1"
        assert goal.is_active is True
        assert goal.created_at == now
        assert goal.id == goal_id_for(now)

    @pytest.mark.asyncio
    async def test_completion_parameters(self, normalizer, completion, now):
        completion.complete.return_value = "{}"

        await normalizer.normalize("Learn Spanish", "user_1", now=now)

        args, kwargs = completion.complete.call_args
        assert "Learn Spanish" in args[1]
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 500

    @pytest.mark.asyncio
    async def test_no_json_uses_defaults(self, normalizer, completion, now):
        """A response without any JSON object yields a generic goal."""
        completion.complete.return_value = "I couldn't understand that goal, sorry."

        goal = await normalizer.normalize("something vague", "user_1", now=now)

        assert goal.goal_type.category is GoalCategory.CUSTOM
        assert goal.goal_type.name == "custom"
        assert goal.frequency.kind is FrequencyKind.WEEKLY
        assert goal.duration_minutes == 60
        assert goal.preferred_times == ()
        assert goal.is_active is True

    @pytest.mark.asyncio
    async def test_json_inside_prose(self, normalizer, completion, now):
        completion.complete.return_value = (
            'Here you go:\n```json\n{"goal_type": "learning", "frequency": "daily"}\n```'
        )
        goal = await normalizer.normalize("Study", "user_1", now=now)
        assert goal.goal_type.category is GoalCategory.LEARNING
        assert goal.frequency.kind is FrequencyKind.DAILY

    @pytest.mark.asyncio
    async def test_transport_failure_propagates(self, normalizer, completion):
        completion.complete.side_effect = CompletionError("unreachable")
        with pytest.raises(CompletionError):
            await normalizer.normalize("Run", "user_1")

    @pytest.mark.asyncio
    async def test_timeout_propagates(self, normalizer, completion):
        completion.complete.side_effect = CompletionTimeout("slow")
        with pytest.raises(CompletionTimeout):
            await normalizer.normalize("Run", "user_1")


class TestBuildGoal:
    """Field-level fallbacks on partially valid responses."""

    def build(self, normalizer, now, **fields):
        return normalizer.build_goal(goal_json(**fields), "desc", "user_1", now)

    def test_unknown_goal_type_becomes_custom_label(self, normalizer, now):
        goal = self.build(normalizer, now, goal_type="meditation")
        assert goal.goal_type.category is GoalCategory.CUSTOM
        assert goal.goal_type.name == "meditation"

    def test_custom_type_label(self, normalizer, now):
        goal = self.build(normalizer, now, goal_type="custom", custom_type="pottery")
        assert goal.goal_type.name == "pottery"

    def test_custom_without_label(self, normalizer, now):
        goal = self.build(normalizer, now, goal_type="custom")
        assert goal.goal_type.name == "custom"

    def test_category_match_is_case_sensitive(self, normalizer, now):
        goal = self.build(normalizer, now, goal_type="Exercise")
        assert goal.goal_type.category is GoalCategory.CUSTOM

    def test_custom_frequency_count(self, normalizer, now):
        goal = self.build(normalizer, now, frequency="custom", custom_frequency=3)
        assert goal.frequency.kind is FrequencyKind.CUSTOM
        assert goal.frequency.count == 3

    def test_custom_frequency_missing_count(self, normalizer, now):
        goal = self.build(normalizer, now, frequency="twice a fortnight")
        assert goal.frequency.kind is FrequencyKind.CUSTOM
        assert goal.frequency.count == 1

    @pytest.mark.parametrize("duration", [0, -30, "an hour", None, 12.5])
    def test_invalid_duration_defaults(self, normalizer, now, duration):
        goal = self.build(normalizer, now, duration_minutes=duration)
        assert goal.duration_minutes == 60

    def test_preferences_without_times_skipped(self, normalizer, now):
        goal = self.build(
            normalizer,
            now,
            preferred_times=[
                {"day_of_week": "monday"},
                {"start_time": "07:00", "end_time": "08:00", "day_of_week": "someday"},
                "evening",
            ],
        )
        assert goal.preferred_times == (TimePreference("07:00", "08:00", None),)

    def test_preferences_not_a_list(self, normalizer, now):
        goal = self.build(normalizer, now, preferred_times="mornings")
        assert goal.preferred_times == ()
