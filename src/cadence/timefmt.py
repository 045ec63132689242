"""Canonical instant formatting shared by storage and the window evaluator."""

from datetime import datetime, timezone

CANONICAL_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_instant(dt: datetime) -> str:
    """Format an aware datetime as a canonical UTC string, truncated to seconds.

    Raises:
        ValueError: If the datetime is naive.
    """
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise ValueError(f"Naive datetime is not an absolute instant: {dt!r}")
    return dt.astimezone(timezone.utc).strftime(CANONICAL_FORMAT)


def parse_instant(text: str) -> datetime:
    """Parse an ISO-8601 instant into an aware UTC datetime.

    Accepts a trailing ``Z`` or an explicit offset. Strings without an offset
    are rejected since they don't name an absolute instant.

    Raises:
        ValueError: If the value can't be parsed as an absolute instant.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError(f"Not an instant: {text!r}")

    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"

    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise ValueError(f"Instant has no UTC offset: {text!r}")
    return dt.astimezone(timezone.utc)
