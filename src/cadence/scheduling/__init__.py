"""Goal normalization, candidate generation and suggestion lifecycle."""

from .generator import CandidateGenerator, bind_goal
from .lifecycle import (
    AcceptOutcome,
    InvalidTransitionError,
    SuggestionLifecycle,
    SuggestionNotFoundError,
)
from .models import (
    Frequency,
    FrequencyKind,
    GoalCategory,
    GoalType,
    ScheduleRequest,
    ScheduleSuggestion,
    SchedulingGoal,
    SuggestionStatus,
    TimePreference,
    Weekday,
)
from .normalizer import GoalNormalizer

__all__ = [
    "AcceptOutcome",
    "CandidateGenerator",
    "Frequency",
    "FrequencyKind",
    "GoalCategory",
    "GoalNormalizer",
    "GoalType",
    "InvalidTransitionError",
    "ScheduleRequest",
    "ScheduleSuggestion",
    "SchedulingGoal",
    "SuggestionLifecycle",
    "SuggestionNotFoundError",
    "SuggestionStatus",
    "TimePreference",
    "Weekday",
    "bind_goal",
]
