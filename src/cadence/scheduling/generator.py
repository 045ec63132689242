"""Candidate time-slot generation using the Completion Service."""

import dataclasses
import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Iterable

from ..calendar.base import CalendarEvent
from ..completion import (
    CompletionService,
    CompletionTimeout,
    extract_json_object,
    iter_json_objects,
)
from ..completion.jsonish import get_float, get_str
from ..timefmt import format_instant, parse_instant, utcnow
from .models import ScheduleRequest, ScheduleSuggestion, SuggestionStatus, TimePreference
from .prompts import SUGGESTION_PROMPT, SUGGESTION_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 3
DEFAULT_CONFIDENCE = 0.5
HORIZON = timedelta(days=7)
SUGGESTION_ID_PREFIX = "suggestion"


def bind_goal(
    suggestions: Iterable[ScheduleSuggestion], goal_id: str
) -> list[ScheduleSuggestion]:
    """Return copies of ``suggestions`` owned by ``goal_id``."""
    return [dataclasses.replace(s, goal_id=goal_id) for s in suggestions]


class CandidateGenerator:
    """Obtains ranked candidate slots for a goal from the Completion Service.

    Overlap with existing events is left to the model's reasoning. The
    generator only enforces structure: items without a parseable start and
    end, or with end <= start, are dropped, and the batch may come back
    short or empty.
    """

    def __init__(
        self,
        completion: CompletionService,
        batch_size: int = DEFAULT_BATCH_SIZE,
        horizon: timedelta = HORIZON,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.completion = completion
        self.batch_size = batch_size
        self.horizon = horizon

    async def generate(
        self,
        goal_description: str,
        existing_events: list[CalendarEvent],
        preferences: list[TimePreference],
        duration_minutes: int,
        *,
        now: datetime | None = None,
    ) -> list[ScheduleSuggestion]:
        """Generate up to ``batch_size`` pending suggestions.

        The returned suggestions have an empty ``goal_id``; bind them with
        ``bind_goal`` before storing.

        Raises:
            CompletionError: On transport failure. A timeout is not raised;
                it yields an empty batch.
        """
        now = now or utcnow()
        prompt = self.build_prompt(
            goal_description, existing_events, preferences, duration_minutes, now
        )

        try:
            content = await self.completion.complete(
                SUGGESTION_SYSTEM_PROMPT,
                prompt,
                temperature=0.3,
                max_tokens=1000,
                purpose="suggestion_generation",
            )
        except CompletionTimeout as e:
            logger.warning(f"Suggestion generation timed out, no candidates: {e}")
            return []

        return self.parse_suggestions(content, goal_description, now)

    async def generate_for(
        self, request: ScheduleRequest, *, now: datetime | None = None
    ) -> list[ScheduleSuggestion]:
        """Generate suggestions for a prepared ScheduleRequest."""
        return await self.generate(
            request.goal_description,
            request.existing_events,
            request.preferences,
            request.duration_minutes,
            now=now,
        )

    def build_prompt(
        self,
        goal_description: str,
        existing_events: list[CalendarEvent],
        preferences: list[TimePreference],
        duration_minutes: int,
        now: datetime,
    ) -> str:
        events_json = json.dumps([event.to_dict() for event in existing_events])
        preferences_json = json.dumps([pref.to_dict() for pref in preferences])
        return SUGGESTION_PROMPT.format(
            count=self.batch_size,
            goal=goal_description,
            duration=duration_minutes,
            now=format_instant(now),
            horizon=format_instant(now + self.horizon),
            events=events_json,
            preferences=preferences_json,
        )

    def parse_suggestions(
        self, content: str, goal_description: str, now: datetime
    ) -> list[ScheduleSuggestion]:
        """Parse a raw completion into validated suggestions.

        Args:
            content: The raw completion text.
            goal_description: Default title for items without one.
            now: Creation instant for the batch.

        Returns:
            Valid suggestions ranked by confidence, at most ``batch_size``.
        """
        batch = uuid.uuid4().hex[:8]
        suggestions = []
        for index, item in enumerate(self._candidate_items(content)):
            suggestion = self._to_suggestion(
                item, f"{SUGGESTION_ID_PREFIX}_{batch}_{index}", goal_description, now
            )
            if suggestion is not None:
                suggestions.append(suggestion)

        suggestions.sort(key=lambda s: s.confidence_score, reverse=True)
        return suggestions[: self.batch_size]

    def _candidate_items(self, content: str) -> list[dict[str, Any]]:
        data = extract_json_object(content)
        if data is not None:
            items = data.get("suggestions")
            if not isinstance(items, list):
                logger.warning("Invalid response structure: missing 'suggestions' list")
                return []
            return [item for item in items if isinstance(item, dict)]

        # Whole object is broken; salvage the items that decode on their own.
        anchor = content.find('"suggestions"')
        if anchor == -1:
            return []
        return list(iter_json_objects(content, anchor))

    def _to_suggestion(
        self,
        item: dict[str, Any],
        suggestion_id: str,
        goal_description: str,
        now: datetime,
    ) -> ScheduleSuggestion | None:
        try:
            start = parse_instant(item["start_time"])
            end = parse_instant(item["end_time"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Skipping suggestion without valid start/end: {item}")
            return None

        if end <= start:
            logger.warning(f"Skipping suggestion that ends before it starts: {item}")
            return None

        return ScheduleSuggestion(
            id=suggestion_id,
            goal_id="",
            title=get_str(item, "title") or goal_description,
            description=get_str(item, "description"),
            start_time=start,
            end_time=end,
            confidence_score=get_float(item, "confidence_score", DEFAULT_CONFIDENCE),
            reasoning=get_str(item, "reasoning"),
            created_at=now,
            status=SuggestionStatus.PENDING,
        )
