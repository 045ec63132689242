"""Suggestion state machine and its calendar side effects."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING

from ..calendar.base import CalendarError, CalendarService
from ..logging import JSONLLogger, get_logger
from ..timefmt import utcnow
from .models import ScheduleSuggestion, SuggestionStatus

if TYPE_CHECKING:
    from ..storage.store import SchedulerStore

logger = logging.getLogger(__name__)

AI_MARKER = "🤖 "

# Same-status writes are allowed separately as idempotent overwrites.
ALLOWED_TRANSITIONS: dict[SuggestionStatus, frozenset[SuggestionStatus]] = {
    SuggestionStatus.PENDING: frozenset(
        {SuggestionStatus.ACCEPTED, SuggestionStatus.REJECTED, SuggestionStatus.EXPIRED}
    ),
    SuggestionStatus.ACCEPTED: frozenset(),
    SuggestionStatus.REJECTED: frozenset(),
    SuggestionStatus.EXPIRED: frozenset(),
}


class SuggestionNotFoundError(LookupError):
    """No suggestion with the given id exists."""


class InvalidTransitionError(ValueError):
    """The requested status change is not allowed."""

    def __init__(self, suggestion_id: str, old: SuggestionStatus, new: SuggestionStatus):
        super().__init__(
            f"Suggestion {suggestion_id} is {old.value}, can't become {new.value}"
        )
        self.suggestion_id = suggestion_id
        self.old = old
        self.new = new


@dataclass(frozen=True)
class AcceptOutcome:
    """Result of accepting a suggestion.

    The status write always completes; ``event_error`` reports a calendar
    failure separately. Both are None for an idempotent re-accept.
    """

    suggestion: ScheduleSuggestion
    event_id: str | None = None
    event_error: str | None = None

    @property
    def event_created(self) -> bool:
        return self.event_id is not None


def check_transition(
    suggestion: ScheduleSuggestion, new: SuggestionStatus
) -> bool:
    """Validate a transition.

    Returns:
        False if the suggestion already has ``new`` (nothing to do), True if
        the transition should be applied.

    Raises:
        InvalidTransitionError: If the transition is not allowed.
    """
    if suggestion.status is new:
        return False
    if new not in ALLOWED_TRANSITIONS[suggestion.status]:
        raise InvalidTransitionError(suggestion.id, suggestion.status, new)
    return True


def event_description(suggestion: ScheduleSuggestion) -> str:
    parts = [suggestion.description, suggestion.reasoning]
    return "\n\n".join(part for part in parts if part)


class SuggestionLifecycle:
    """Applies user-driven and time-driven status changes.

    Accepting is two-phase: an intent is persisted, the status is written,
    the calendar event is created, then the intent is finalized. Intents
    left unfinished (crash, calendar outage) are retried by ``reconcile``.
    """

    def __init__(
        self,
        store: SchedulerStore,
        calendar: CalendarService | None,
        calendar_id: str,
        marker: str = AI_MARKER,
        event_log: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.calendar = calendar
        self.calendar_id = calendar_id
        self.marker = marker
        self._event_log = event_log

    @property
    def event_log(self) -> JSONLLogger:
        return self._event_log or get_logger()

    def _load(self, suggestion_id: str) -> ScheduleSuggestion:
        suggestion = self.store.get_suggestion(suggestion_id)
        if suggestion is None:
            raise SuggestionNotFoundError(f"Suggestion not found: {suggestion_id}")
        return suggestion

    def _write_status(
        self, suggestion: ScheduleSuggestion, status: SuggestionStatus
    ) -> ScheduleSuggestion:
        self.store.update_suggestion_status(suggestion.id, status)
        self.event_log.log_transition(
            suggestion.id, suggestion.status.value, status.value
        )
        return replace(suggestion, status=status)

    async def accept(self, suggestion_id: str) -> AcceptOutcome:
        """Accept a pending suggestion and create its calendar event.

        Raises:
            SuggestionNotFoundError: If the id is unknown.
            InvalidTransitionError: If the suggestion is rejected or expired.
        """
        suggestion = self._load(suggestion_id)
        if not check_transition(suggestion, SuggestionStatus.ACCEPTED):
            return AcceptOutcome(suggestion=suggestion)

        self.store.begin_accept_intent(suggestion.id)
        accepted = self._write_status(suggestion, SuggestionStatus.ACCEPTED)

        try:
            event_id = await self._create_event(accepted)
        except CalendarError as e:
            logger.warning(f"Calendar event for {suggestion.id} not created: {e}")
            self.store.fail_accept_intent(suggestion.id, str(e))
            return AcceptOutcome(suggestion=accepted, event_error=str(e))

        self.store.finish_accept_intent(suggestion.id, event_id)
        return AcceptOutcome(suggestion=accepted, event_id=event_id)

    def reject(self, suggestion_id: str) -> ScheduleSuggestion:
        """Reject a pending suggestion. Rejecting twice is a no-op.

        Raises:
            SuggestionNotFoundError: If the id is unknown.
            InvalidTransitionError: If the suggestion is accepted or expired.
        """
        suggestion = self._load(suggestion_id)
        if not check_transition(suggestion, SuggestionStatus.REJECTED):
            return suggestion
        return self._write_status(suggestion, SuggestionStatus.REJECTED)

    def expire_stale(self, now: datetime | None = None) -> int:
        """Expire pending suggestions whose start time has passed.

        Returns:
            Number of suggestions expired.
        """
        now = now or utcnow()
        count = 0
        for suggestion in self.store.stale_pending_suggestions(now):
            self._write_status(suggestion, SuggestionStatus.EXPIRED)
            count += 1
        if count:
            logger.info(f"Expired {count} stale suggestion(s)")
        return count

    async def reconcile(self) -> int:
        """Retry event creation for accepted suggestions without an event.

        Intents whose suggestion is gone or no longer accepted are marked
        failed and left alone.

        Returns:
            Number of intents finalized.
        """
        finalized = 0
        for intent in self.store.unfinished_accept_intents():
            suggestion = self.store.get_suggestion(intent.suggestion_id)
            if suggestion is None or suggestion.status is not SuggestionStatus.ACCEPTED:
                if intent.state != "failed":
                    self.store.fail_accept_intent(
                        intent.suggestion_id, "suggestion no longer accepted"
                    )
                continue

            try:
                event_id = await self._create_event(suggestion)
            except CalendarError as e:
                logger.warning(f"Reconcile of {suggestion.id} failed: {e}")
                self.store.fail_accept_intent(suggestion.id, str(e))
                continue

            self.store.finish_accept_intent(suggestion.id, event_id)
            finalized += 1
        return finalized

    async def _create_event(self, suggestion: ScheduleSuggestion) -> str:
        if self.calendar is None:
            raise CalendarError("Google Calendar is not connected")
        return await self.calendar.create_event(
            self.calendar_id,
            f"{self.marker}{suggestion.title}",
            event_description(suggestion),
            suggestion.start_time,
            suggestion.end_time,
        )
