"""Temporal window evaluation for time-anchored records.

A record is "active" from one hour before its nominal event time until one
hour after it. Stored times that don't parse are inactive with priority 0.
"""

from datetime import datetime, timedelta

from ..timefmt import parse_instant

ACTIVE_WINDOW = timedelta(hours=1)

PRIORITY_STARTED = 100
PRIORITY_UNDER_30_MIN = 90
PRIORITY_UNDER_1_HOUR = 80
PRIORITY_LATER = 50
PRIORITY_INVALID = 0


def _resolve(nominal: datetime | str) -> datetime | None:
    if isinstance(nominal, datetime):
        if nominal.tzinfo is None:
            return None
        return nominal
    try:
        return parse_instant(nominal)
    except (TypeError, ValueError):
        return None


def minutes_until(nominal: datetime, now: datetime) -> int:
    """Whole minutes from ``now`` to ``nominal``, truncated toward zero."""
    return int((nominal - now).total_seconds() / 60)


def is_active(nominal: datetime | str, now: datetime) -> bool:
    """True if ``now`` lies within one hour either side of ``nominal``."""
    event_time = _resolve(nominal)
    if event_time is None:
        return False
    return event_time - ACTIVE_WINDOW <= now <= event_time + ACTIVE_WINDOW


def priority(nominal: datetime | str, now: datetime) -> int:
    """Urgency score; higher means closer or already started."""
    event_time = _resolve(nominal)
    if event_time is None:
        return PRIORITY_INVALID

    minutes = minutes_until(event_time, now)
    if minutes < 0:
        return PRIORITY_STARTED
    if minutes < 30:
        return PRIORITY_UNDER_30_MIN
    if minutes < 60:
        return PRIORITY_UNDER_1_HOUR
    return PRIORITY_LATER
