"""Google Calendar v3 REST client."""

import asyncio
import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from ..timefmt import format_instant, parse_instant
from .base import CalendarError, CalendarEvent

logger = logging.getLogger(__name__)

API_BASE = "https://www.googleapis.com/calendar/v3"


def _parse_event_time(payload: dict[str, Any] | None) -> datetime | str | None:
    """Read a Google ``start``/``end`` object: dateTime wins, then all-day date."""
    if not payload:
        return None
    if payload.get("dateTime"):
        try:
            return parse_instant(payload["dateTime"])
        except ValueError:
            return None
    return payload.get("date")


def parse_event(item: dict[str, Any]) -> CalendarEvent | None:
    """Convert a Google event resource, or None if it has no usable times."""
    start = _parse_event_time(item.get("start"))
    end = _parse_event_time(item.get("end"))
    if start is None or end is None:
        return None
    return CalendarEvent(
        id=item.get("id", ""),
        summary=item.get("summary", ""),
        description=item.get("description"),
        start=start,
        end=end,
    )


class GoogleCalendarClient:
    """CalendarService backed by the Google Calendar REST API.

    Event listing is idempotent, so transport errors and 5xx responses are
    retried with exponential backoff. Event creation is never retried.
    """

    def __init__(
        self,
        access_token: str,
        *,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not access_token:
            raise ValueError("Google access token is required")
        self._access_token = access_token
        self._timeout = timeout
        self._max_retries = max_retries
        self._backoff = backoff
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=API_BASE,
            timeout=self._timeout,
            headers={"Authorization": f"Bearer {self._access_token}"},
            transport=self._transport,
        )

    async def list_events(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> list[CalendarEvent]:
        """List events in ``[start, end]``, following ``nextPageToken``."""
        params = {
            "timeMin": format_instant(start),
            "timeMax": format_instant(end),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        path = f"/calendars/{quote(calendar_id, safe='')}/events"

        events: list[CalendarEvent] = []
        page_token: str | None = None
        while True:
            page_params = dict(params)
            if page_token:
                page_params["pageToken"] = page_token
            page = await self._get_page(path, page_params)

            items = page.get("items") or []
            events.extend(event for event in map(parse_event, items) if event)
            page_token = page.get("nextPageToken")
            if not page_token:
                return events

    async def _get_page(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        """GET one page of a listing, retrying transport errors and 5xx."""
        last_error: str | None = None
        for attempt in range(self._max_retries + 1):
            if attempt:
                await asyncio.sleep(self._backoff * (2 ** (attempt - 1)))
            try:
                async with self._client() as client:
                    response = await client.get(path, params=params)
            except httpx.TimeoutException:
                last_error = f"Request timed out after {self._timeout}s"
                logger.warning("list_events attempt %d: %s", attempt + 1, last_error)
                continue
            except httpx.RequestError as e:
                last_error = f"Request failed: {e}"
                logger.warning("list_events attempt %d: %s", attempt + 1, last_error)
                continue

            if response.status_code >= 500:
                last_error = f"HTTP {response.status_code}"
                logger.warning("list_events attempt %d: %s", attempt + 1, last_error)
                continue
            if not response.is_success:
                raise CalendarError(
                    f"Listing events failed: HTTP {response.status_code}"
                )

            try:
                page = response.json()
            except ValueError as e:
                raise CalendarError(f"Invalid events response: {e}") from e
            if not isinstance(page, dict):
                raise CalendarError("Invalid events response: not an object")
            return page

        raise CalendarError(f"Listing events failed: {last_error}")

    async def create_event(
        self,
        calendar_id: str,
        summary: str,
        description: str,
        start: datetime,
        end: datetime,
    ) -> str:
        body = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": format_instant(start), "timeZone": "UTC"},
            "end": {"dateTime": format_instant(end), "timeZone": "UTC"},
        }
        path = f"/calendars/{quote(calendar_id, safe='')}/events"

        try:
            async with self._client() as client:
                response = await client.post(path, json=body)
        except httpx.TimeoutException as e:
            raise CalendarError(f"Request timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            raise CalendarError(f"Request failed: {e}") from e

        if not response.is_success:
            raise CalendarError(f"Creating event failed: HTTP {response.status_code}")

        try:
            event_id = response.json().get("id")
        except ValueError as e:
            raise CalendarError(f"Invalid create response: {e}") from e
        if not event_id:
            raise CalendarError("Created event has no id")
        return event_id
