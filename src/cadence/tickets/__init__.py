"""Imported tickets and their overlays."""

from .models import TicketAnalysis, TicketRecord
from .overlay import (
    Overlay,
    active_overlays,
    format_overlay_text,
    overlay_priority,
    should_show_overlay,
)

__all__ = [
    "Overlay",
    "TicketAnalysis",
    "TicketRecord",
    "active_overlays",
    "format_overlay_text",
    "overlay_priority",
    "should_show_overlay",
]
