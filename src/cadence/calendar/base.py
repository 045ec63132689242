"""Calendar Service interface and event model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from ..timefmt import format_instant


class CalendarError(Exception):
    """Raised when the Calendar Service can't be reached or rejects a call."""


@dataclass(frozen=True)
class CalendarEvent:
    """An existing calendar event.

    ``start``/``end`` are aware datetimes for timed events. All-day events
    keep their ``YYYY-MM-DD`` date string instead.
    """

    id: str
    summary: str
    start: datetime | str
    end: datetime | str
    description: str | None = None

    @property
    def all_day(self) -> bool:
        return isinstance(self.start, str)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for inclusion in a completion prompt."""

        def _fmt(value: datetime | str) -> str:
            return value if isinstance(value, str) else format_instant(value)

        data: dict[str, Any] = {
            "summary": self.summary,
            "start": _fmt(self.start),
            "end": _fmt(self.end),
        }
        if self.all_day:
            data["all_day"] = True
        return data


class CalendarService(Protocol):
    """Read/write access to the user's calendars."""

    async def list_events(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> list[CalendarEvent]:
        """List events in ``calendar_id`` overlapping [start, end]."""
        ...

    async def create_event(
        self,
        calendar_id: str,
        summary: str,
        description: str,
        start: datetime,
        end: datetime,
    ) -> str:
        """Create an event and return its id."""
        ...
