"""Calendar Service collaborator."""

from .base import CalendarError, CalendarEvent, CalendarService
from .google import GoogleCalendarClient

__all__ = [
    "CalendarError",
    "CalendarEvent",
    "CalendarService",
    "GoogleCalendarClient",
]
