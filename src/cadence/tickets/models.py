"""Data models for imported tickets."""

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from ..timefmt import parse_instant


@dataclass(frozen=True)
class TicketAnalysis:
    """Structured information extracted from a ticket."""

    event_name: str
    event_date: str  # YYYY-MM-DD
    event_time: str  # HH:MM
    venue: str
    seat_info: str | None = None
    ticket_type: str | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TicketAnalysis":
        """Create from a dictionary.

        Raises:
            ValueError: If a required field is missing or not a string.
        """
        required = ("event_name", "event_date", "event_time", "venue")
        for key in required:
            if not isinstance(data.get(key), str):
                raise ValueError(f"Ticket analysis missing '{key}'")
        return cls(
            event_name=data["event_name"],
            event_date=data["event_date"],
            event_time=data["event_time"],
            venue=data["venue"],
            seat_info=data.get("seat_info"),
            ticket_type=data.get("ticket_type"),
        )


@dataclass(frozen=True)
class TicketRecord:
    """A stored ticket row. Read-only apart from the shared window query."""

    id: int
    event_id: str
    analysis: str
    raw_content: str
    created_at: str
    event_date: str

    def parse_analysis(self) -> TicketAnalysis:
        """Decode the stored analysis payload.

        Raises:
            ValueError: If the payload isn't a valid analysis.
        """
        try:
            data = json.loads(self.analysis)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid ticket analysis: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Invalid ticket analysis: not an object")
        return TicketAnalysis.from_dict(data)

    def event_datetime(self) -> datetime:
        """The event instant.

        Raises:
            ValueError: If ``event_date`` isn't an absolute instant.
        """
        return parse_instant(self.event_date)
