"""Data models for scheduling goals and suggestions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..calendar.base import CalendarEvent


class GoalCategory(Enum):
    """Fixed goal categories; CUSTOM carries a free-form label."""

    EXERCISE = "exercise"
    HOBBY = "hobby"
    LEARNING = "learning"
    SOCIAL = "social"
    WORK = "work"
    CUSTOM = "custom"


class FrequencyKind(Enum):
    """How often a goal recurs."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class Weekday(Enum):
    """Day-of-week constraint for a time preference."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


class SuggestionStatus(Enum):
    """Lifecycle state of a suggestion."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass(frozen=True)
class GoalType:
    """A goal category, with a label when the category is CUSTOM.

    Attributes:
        category: One of the fixed categories.
        label: Free-form label, only meaningful for CUSTOM.
    """

    category: GoalCategory
    label: str | None = None

    @classmethod
    def custom(cls, label: str = "custom") -> GoalType:
        return cls(GoalCategory.CUSTOM, label)

    @property
    def name(self) -> str:
        """Display name: the label for custom goals, the category otherwise."""
        if self.category is GoalCategory.CUSTOM:
            return self.label or "custom"
        return self.category.value


@dataclass(frozen=True)
class Frequency:
    """Recurrence of a goal; CUSTOM means ``count`` times per period."""

    kind: FrequencyKind
    count: int | None = None

    def __post_init__(self) -> None:
        if self.kind is FrequencyKind.CUSTOM and (self.count is None or self.count < 1):
            raise ValueError("Custom frequency count must be at least 1")

    @classmethod
    def custom(cls, count: int) -> Frequency:
        return cls(FrequencyKind.CUSTOM, count)

    def describe(self) -> str:
        if self.kind is FrequencyKind.CUSTOM:
            return f"{self.count} times per period"
        return self.kind.value


@dataclass(frozen=True)
class TimePreference:
    """A preferred time window. ``day_of_week`` of None means any day."""

    start_time: str
    end_time: str
    day_of_week: Weekday | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_of_week": self.day_of_week.value if self.day_of_week else None,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimePreference:
        day = data.get("day_of_week")
        return cls(
            start_time=data["start_time"],
            end_time=data["end_time"],
            day_of_week=Weekday(day) if day else None,
        )


@dataclass(frozen=True)
class SchedulingGoal:
    """A user's structured recurring intent.

    Attributes:
        id: Time-derived unique id.
        user_id: Owning user.
        goal_type: Category (and label for custom goals).
        description: The user's original text.
        frequency: How often the goal recurs.
        duration_minutes: Target duration of each occurrence, always > 0.
        preferred_times: Ordered preferences; empty means no preference.
        created_at: Aware UTC creation instant.
        is_active: Soft-disable flag.
    """

    id: str
    user_id: str
    goal_type: GoalType
    description: str
    frequency: Frequency
    duration_minutes: int
    created_at: datetime
    preferred_times: tuple[TimePreference, ...] = ()
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score into [0.0, 1.0]."""
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class ScheduleSuggestion:
    """A single proposed calendar occurrence for a goal.

    The confidence score is clamped into [0, 1] on construction rather than
    rejected.
    """

    id: str
    goal_id: str
    title: str
    start_time: datetime
    end_time: datetime
    created_at: datetime
    description: str = ""
    confidence_score: float = 0.5
    reasoning: str = ""
    status: SuggestionStatus = SuggestionStatus.PENDING

    def __post_init__(self) -> None:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        object.__setattr__(self, "confidence_score", clamp_confidence(self.confidence_score))

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


@dataclass(frozen=True)
class ScheduleRequest:
    """Everything the candidate generator needs for one goal."""

    goal_description: str
    duration_minutes: int
    existing_events: list[CalendarEvent] = field(default_factory=list)
    preferences: list[TimePreference] = field(default_factory=list)
