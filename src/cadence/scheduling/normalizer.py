"""Goal extraction from natural language using the Completion Service."""

import logging
from datetime import datetime
from typing import Any

from ..completion import CompletionService, extract_json_object
from ..completion.jsonish import get_positive_int, get_str
from ..timefmt import utcnow
from .models import (
    Frequency,
    FrequencyKind,
    GoalCategory,
    GoalType,
    SchedulingGoal,
    TimePreference,
    Weekday,
)
from .prompts import GOAL_EXTRACTION_PROMPT, GOAL_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60
DEFAULT_CUSTOM_LABEL = "custom"

_CATEGORIES = {
    category.value: category
    for category in GoalCategory
    if category is not GoalCategory.CUSTOM
}
_FREQUENCIES = {
    kind.value: kind for kind in FrequencyKind if kind is not FrequencyKind.CUSTOM
}
_WEEKDAYS = {day.value: day for day in Weekday}


def goal_id_for(created_at: datetime) -> str:
    """Derive a goal id from its creation instant."""
    return f"goal_{created_at.strftime('%Y%m%d%H%M%S%f')}"


def parse_goal_type(data: dict[str, Any]) -> GoalType:
    """Map ``goal_type``/``custom_type`` to a GoalType, defaulting to custom."""
    token = get_str(data, "goal_type", DEFAULT_CUSTOM_LABEL)
    category = _CATEGORIES.get(token)
    if category is not None:
        return GoalType(category)

    label = get_str(data, "custom_type").strip()
    if not label and token != DEFAULT_CUSTOM_LABEL:
        label = token.strip()
    return GoalType.custom(label or DEFAULT_CUSTOM_LABEL)


def parse_frequency(data: dict[str, Any]) -> Frequency:
    """Map ``frequency``/``custom_frequency`` to a Frequency, defaulting to weekly."""
    token = get_str(data, "frequency", FrequencyKind.WEEKLY.value)
    kind = _FREQUENCIES.get(token)
    if kind is not None:
        return Frequency(kind)
    return Frequency.custom(get_positive_int(data, "custom_frequency", 1))


def parse_preferences(data: dict[str, Any]) -> tuple[TimePreference, ...]:
    """Read ``preferred_times``; items without start/end strings are skipped."""
    items = data.get("preferred_times")
    if not isinstance(items, list):
        return ()

    preferences = []
    for item in items:
        if not isinstance(item, dict):
            continue
        start = item.get("start_time")
        end = item.get("end_time")
        if not isinstance(start, str) or not isinstance(end, str):
            logger.warning(f"Skipping time preference without start/end: {item}")
            continue
        day = item.get("day_of_week")
        preferences.append(
            TimePreference(
                start_time=start,
                end_time=end,
                day_of_week=_WEEKDAYS.get(day) if isinstance(day, str) else None,
            )
        )
    return tuple(preferences)


class GoalNormalizer:
    """Turns free-text goals into SchedulingGoal values.

    The completion is untrusted: anything missing or malformed falls back to
    a generic goal (custom category, weekly, 60 minutes, no preferences).
    Only transport failures from the Completion Service propagate.
    """

    def __init__(self, completion: CompletionService) -> None:
        self.completion = completion

    async def normalize(
        self,
        description: str,
        user_id: str,
        *,
        now: datetime | None = None,
    ) -> SchedulingGoal:
        """Create a goal from a natural language description.

        Args:
            description: The user's goal text.
            user_id: Owner of the goal.
            now: Creation instant, defaults to the current time.

        Returns:
            A new active goal, possibly with default fields.

        Raises:
            CompletionError: If the Completion Service can't be reached.
        """
        prompt = GOAL_EXTRACTION_PROMPT.format(description=description)
        content = await self.completion.complete(
            GOAL_SYSTEM_PROMPT,
            prompt,
            temperature=0.1,
            max_tokens=500,
            purpose="goal_extraction",
        )
        return self.build_goal(content, description, user_id, now or utcnow())

    def build_goal(
        self,
        content: str,
        description: str,
        user_id: str,
        created_at: datetime,
    ) -> SchedulingGoal:
        """Build a goal from a raw completion, applying defaults."""
        data = extract_json_object(content)
        if data is None:
            logger.warning("Goal extraction returned no JSON object, using defaults")
            data = {}

        return SchedulingGoal(
            id=goal_id_for(created_at),
            user_id=user_id,
            goal_type=parse_goal_type(data),
            description=description,
            frequency=parse_frequency(data),
            duration_minutes=get_positive_int(
                data, "duration_minutes", DEFAULT_DURATION_MINUTES
            ),
            preferred_times=parse_preferences(data),
            created_at=created_at,
            is_active=True,
        )
