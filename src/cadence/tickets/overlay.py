"""Overlay text and ordering for tickets whose event is happening now."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from ..scheduling import window
from ..timefmt import utcnow
from .models import TicketRecord

if TYPE_CHECKING:
    from ..storage.store import SchedulerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Overlay:
    """A ticket ready to be shown, with its urgency."""

    event_id: str
    priority: int
    text: str


def _event_time(ticket: TicketRecord) -> datetime | None:
    try:
        return ticket.event_datetime()
    except ValueError:
        return None


def should_show_overlay(ticket: TicketRecord, now: datetime) -> bool:
    event_time = _event_time(ticket)
    return event_time is not None and window.is_active(event_time, now)


def overlay_priority(ticket: TicketRecord, now: datetime) -> int:
    event_time = _event_time(ticket)
    if event_time is None:
        return window.PRIORITY_INVALID
    return window.priority(event_time, now)


def format_overlay_text(ticket: TicketRecord) -> str:
    """Render the overlay text for a ticket.

    Raises:
        ValueError: If the ticket's analysis payload is malformed.
    """
    analysis = ticket.parse_analysis()
    return (
        f"🎫 {analysis.event_name}\n"
        f"📍 {analysis.venue}\n"
        f"⏰ {analysis.event_date} {analysis.event_time}"
    )


def active_overlays(store: SchedulerStore, now: datetime | None = None) -> list[Overlay]:
    """Overlays for every active ticket, highest priority first."""
    now = now or utcnow()
    overlays = []
    for ticket in store.active_time_windowed_records("tickets", now):
        try:
            text = format_overlay_text(ticket)
        except ValueError as e:
            logger.warning(f"Skipping ticket {ticket.event_id}: {e}")
            continue
        overlays.append(
            Overlay(
                event_id=ticket.event_id,
                priority=overlay_priority(ticket, now),
                text=text,
            )
        )
    return overlays
