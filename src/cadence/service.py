"""Application context and boundary operations.

``SchedulerService`` is the only place exceptions become messages: every
public coroutine returns an ``OperationResult`` and never raises.
"""

import asyncio
import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from groq import AsyncGroq

from .calendar import CalendarError, CalendarEvent, CalendarService, GoogleCalendarClient
from .completion import CompletionError, CompletionService, GroqCompletionClient
from .config import CadenceConfig
from .logging import JSONLLogger, get_logger
from .scheduling import (
    CandidateGenerator,
    GoalNormalizer,
    InvalidTransitionError,
    ScheduleRequest,
    ScheduleSuggestion,
    SchedulingGoal,
    SuggestionLifecycle,
    SuggestionNotFoundError,
    bind_goal,
)
from .storage import SchedulerStore
from .tickets import active_overlays
from .timefmt import utcnow

logger = logging.getLogger(__name__)

SELECTED_CALENDARS_KEY = "selected_calendars"


class GoalNotFoundError(LookupError):
    """No goal with the given id exists."""


@dataclass
class OperationResult:
    """Result of a boundary operation."""

    success: bool
    output: str
    error: str | None = None
    data: dict[str, Any] | None = None


def describe_error(error: Exception) -> str:
    """Human-readable message for an operation failure."""
    if isinstance(error, CompletionError):
        return f"Completion service error: {error}"
    if isinstance(error, CalendarError):
        return f"Calendar error: {error}"
    if isinstance(error, sqlite3.Error):
        return f"Storage error: {error}"
    if isinstance(error, (SuggestionNotFoundError, GoalNotFoundError, InvalidTransitionError)):
        return str(error)
    return f"Error: {error}"


def format_suggestion(suggestion: ScheduleSuggestion) -> str:
    """One-card summary of a suggestion."""
    start = suggestion.start_time.strftime("%a %d %b %H:%M")
    end = suggestion.end_time.strftime("%H:%M")
    lines = [
        suggestion.title,
        f"{start}-{end} UTC ({suggestion.confidence_score:.0%})",
    ]
    if suggestion.reasoning:
        lines.append(suggestion.reasoning)
    return "\n".join(lines)


def format_goal(goal: SchedulingGoal) -> str:
    line = (
        f"{goal.goal_type.name}: {goal.description} "
        f"({goal.frequency.describe()}, {goal.duration_minutes} min)"
    )
    for pref in goal.preferred_times:
        day = pref.day_of_week.value if pref.day_of_week else "any day"
        line += f"\n  {day} {pref.start_time}-{pref.end_time}"
    return line


class SchedulerContext:
    """Explicit session object shared by every operation.

    Holds the collaborators and the per-user generation locks. Store calls
    are synchronous and never interleave on the event loop, so only
    multi-step operations that await network calls take a lock, and no
    lock is shared between users.
    """

    BUSY_MESSAGE = "Already generating suggestions for this user. Try again shortly."

    def __init__(
        self,
        config: CadenceConfig,
        store: SchedulerStore,
        completion: CompletionService,
        calendar: CalendarService | None = None,
        event_log: JSONLLogger | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.completion = completion
        self.calendar = calendar
        self._event_log = event_log
        self.normalizer = GoalNormalizer(completion)
        self.generator = CandidateGenerator(
            completion,
            batch_size=config.batch_size,
            horizon=timedelta(days=config.lookahead_days),
        )
        self._generation_locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_config(cls, config: CadenceConfig, groq_api_key: str | None) -> "SchedulerContext":
        """Build the production context: SQLite store, Groq, Google Calendar."""
        assert config.db_path is not None
        store = SchedulerStore(config.db_path)
        store.init_db()

        completion = GroqCompletionClient(
            AsyncGroq(api_key=groq_api_key),
            model=config.groq_model,
            timeout=config.completion_timeout,
        )

        calendar = None
        if config.google_access_token:
            calendar = GoogleCalendarClient(
                config.google_access_token,
                timeout=config.calendar_timeout,
                max_retries=config.calendar_max_retries,
            )
        return cls(config, store, completion, calendar)

    @property
    def event_log(self) -> JSONLLogger:
        return self._event_log or get_logger()

    def require_calendar(self) -> CalendarService:
        if self.calendar is None:
            raise CalendarError("Google Calendar is not connected (set GOOGLE_ACCESS_TOKEN)")
        return self.calendar

    def generation_lock(self, user_id: str) -> asyncio.Lock:
        if user_id not in self._generation_locks:
            self._generation_locks[user_id] = asyncio.Lock()
        return self._generation_locks[user_id]

    def selected_calendars(self) -> list[str]:
        """Selected calendar ids; the first one receives accepted events."""
        raw = self.store.get_setting(SELECTED_CALENDARS_KEY)
        if raw:
            try:
                ids = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Ignoring unreadable selected_calendars setting")
            else:
                if isinstance(ids, list) and ids:
                    return [str(i) for i in ids]
        return [self.config.calendar_id]

    def lifecycle(self) -> SuggestionLifecycle:
        return SuggestionLifecycle(
            self.store,
            self.calendar,
            self.selected_calendars()[0],
            event_log=self._event_log,
        )

    def close(self) -> None:
        self.store.close()


class SchedulerService:
    """Process-boundary operations: create goal, generate, accept, reject."""

    def __init__(self, context: SchedulerContext) -> None:
        self.context = context

    @property
    def store(self) -> SchedulerStore:
        return self.context.store

    def _fail(self, name: str, error: Exception, user_id: str | None = None) -> OperationResult:
        message = describe_error(error)
        logger.exception("%s failed", name)
        self.context.event_log.log_operation(name, False, user_id=user_id, error=message)
        return OperationResult(success=False, output="", error=message)

    def _ok(
        self,
        name: str,
        output: str,
        data: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> OperationResult:
        self.context.event_log.log_operation(name, True, user_id=user_id)
        return OperationResult(success=True, output=output, data=data)

    async def create_goal_from_text(
        self, text: str, user_id: str, *, now: datetime | None = None
    ) -> OperationResult:
        """Normalize a goal description and persist it."""
        name = "create_goal"
        if not text or not text.strip():
            return OperationResult(success=False, output="", error="Goal description is empty")
        try:
            goal = await self.context.normalizer.normalize(text.strip(), user_id, now=now)
            self.store.save_goal(goal)
        except Exception as e:
            return self._fail(name, e, user_id)

        self.context.event_log.log("goal_created", user_id=user_id, goal_id=goal.id)
        return self._ok(name, f"Goal created: {format_goal(goal)}", {"goal": goal}, user_id)

    async def generate_suggestions_for_user(
        self, user_id: str, *, now: datetime | None = None
    ) -> OperationResult:
        """Generate and store suggestions for every active goal of a user.

        A failure for one goal is reported in ``data["errors"]`` without
        stopping the others.
        """
        name = "generate_suggestions"
        lock = self.context.generation_lock(user_id)
        if lock.locked():
            return OperationResult(success=False, output="", error=self.context.BUSY_MESSAGE)

        async with lock:
            try:
                goals = self.store.active_goals(user_id)
                if not goals:
                    return self._ok(
                        name, "No active goals.", {"suggestions": [], "errors": []}, user_id
                    )
                now = now or utcnow()
                events = await self._existing_events(now)
            except Exception as e:
                return self._fail(name, e, user_id)

            created: list[ScheduleSuggestion] = []
            errors: list[str] = []
            for goal in goals:
                try:
                    created.extend(await self._generate_for_goal(goal, events, now))
                except Exception as e:
                    logger.exception("Generation failed for goal %s", goal.id)
                    errors.append(f"{goal.id}: {describe_error(e)}")

        data = {"suggestions": created, "errors": errors}
        if errors and len(errors) == len(goals):
            message = "; ".join(errors)
            self.context.event_log.log_operation(name, False, user_id=user_id, error=message)
            return OperationResult(success=False, output="", error=message, data=data)

        output = f"Generated {len(created)} suggestion(s) for {len(goals)} goal(s)."
        if errors:
            output += f" {len(errors)} goal(s) failed."
        return self._ok(name, output, data, user_id)

    async def _existing_events(self, now: datetime) -> list[CalendarEvent]:
        calendar = self.context.require_calendar()
        end = now + timedelta(days=self.context.config.lookahead_days)
        events: list[CalendarEvent] = []
        for calendar_id in self.context.selected_calendars():
            events.extend(await calendar.list_events(calendar_id, now, end))
        return events

    async def _generate_for_goal(
        self, goal: SchedulingGoal, events: list[CalendarEvent], now: datetime
    ) -> list[ScheduleSuggestion]:
        request = ScheduleRequest(
            goal_description=goal.description,
            duration_minutes=goal.duration_minutes,
            existing_events=events,
            preferences=list(goal.preferred_times),
        )
        start = time.monotonic()
        suggestions = bind_goal(
            await self.context.generator.generate_for(request, now=now), goal.id
        )
        self.store.save_suggestions(suggestions)
        self.context.event_log.log_generation(
            goal.id,
            len(suggestions),
            user_id=goal.user_id,
            duration_ms=(time.monotonic() - start) * 1000,
        )
        return suggestions

    async def accept_suggestion(self, suggestion_id: str) -> OperationResult:
        """Accept a suggestion and create its calendar event."""
        name = "accept_suggestion"
        try:
            outcome = await self.context.lifecycle().accept(suggestion_id)
        except Exception as e:
            return self._fail(name, e)

        data = {
            "suggestion": outcome.suggestion,
            "event_id": outcome.event_id,
            "event_error": outcome.event_error,
        }
        if outcome.event_error:
            output = (
                f"Suggestion accepted: {outcome.suggestion.title}, "
                f"but the calendar event was not created ({outcome.event_error})."
            )
        elif outcome.event_created:
            output = f"Suggestion accepted: {outcome.suggestion.title}"
        else:
            output = f"Suggestion already accepted: {outcome.suggestion.title}"
        return self._ok(name, output, data)

    async def reject_suggestion(self, suggestion_id: str) -> OperationResult:
        """Reject a suggestion."""
        name = "reject_suggestion"
        try:
            suggestion = self.context.lifecycle().reject(suggestion_id)
        except Exception as e:
            return self._fail(name, e)
        return self._ok(name, "Suggestion rejected", {"suggestion": suggestion})

    async def list_goals(self, user_id: str) -> OperationResult:
        try:
            goals = self.store.active_goals(user_id)
        except Exception as e:
            return self._fail("list_goals", e, user_id)
        goals.sort(key=lambda g: g.created_at)
        if not goals:
            return OperationResult(success=True, output="No active goals.", data={"goals": []})
        lines = [f"[{goal.id}] {format_goal(goal)}" for goal in goals]
        return OperationResult(success=True, output="\n".join(lines), data={"goals": goals})

    async def list_pending(self, user_id: str) -> OperationResult:
        try:
            suggestions = self.store.pending_suggestions(user_id)
        except Exception as e:
            return self._fail("list_pending", e, user_id)
        if not suggestions:
            return OperationResult(
                success=True, output="No pending suggestions.", data={"suggestions": []}
            )
        cards = [f"[{s.id}]\n{format_suggestion(s)}" for s in suggestions]
        return OperationResult(
            success=True, output="\n\n".join(cards), data={"suggestions": suggestions}
        )

    async def deactivate_goal(self, goal_id: str) -> OperationResult:
        """Soft-disable a goal; it stays stored but stops generating."""
        name = "deactivate_goal"
        try:
            if not self.store.set_goal_active(goal_id, False):
                raise GoalNotFoundError(f"Goal not found: {goal_id}")
        except Exception as e:
            return self._fail(name, e)
        return self._ok(name, f"Goal disabled: {goal_id}")

    async def set_selected_calendars(self, calendar_ids: list[str]) -> OperationResult:
        name = "set_selected_calendars"
        try:
            self.store.set_setting(SELECTED_CALENDARS_KEY, json.dumps(calendar_ids))
        except Exception as e:
            return self._fail(name, e)
        return self._ok(name, f"Selected calendars: {', '.join(calendar_ids) or 'none'}")

    async def selected_calendars(self) -> OperationResult:
        try:
            ids = self.context.selected_calendars()
        except Exception as e:
            return self._fail("selected_calendars", e)
        return OperationResult(success=True, output=", ".join(ids), data={"calendars": ids})

    async def active_tickets(self, *, now: datetime | None = None) -> OperationResult:
        """Overlay texts for tickets whose event is happening around now."""
        try:
            overlays = active_overlays(self.store, now)
        except Exception as e:
            return self._fail("active_tickets", e)
        output = "\n\n".join(o.text for o in overlays) or "No active tickets."
        return OperationResult(success=True, output=output, data={"overlays": overlays})

    async def expire_stale(self, *, now: datetime | None = None) -> OperationResult:
        name = "expire_stale"
        try:
            count = self.context.lifecycle().expire_stale(now)
        except Exception as e:
            return self._fail(name, e)
        return self._ok(name, f"Expired {count} suggestion(s).", {"expired": count})

    async def reconcile(self) -> OperationResult:
        """Retry calendar events for accepted suggestions that lack one."""
        name = "reconcile"
        try:
            if not self.store.unfinished_accept_intents():
                return self._ok(name, "Nothing to reconcile.", {"finalized": 0})
            count = await self.context.lifecycle().reconcile()
        except Exception as e:
            return self._fail(name, e)
        return self._ok(name, f"Reconciled {count} accepted suggestion(s).", {"finalized": count})
