"""Background checks.

``DailyCheck`` expires, reconciles, then generates suggestions.
``TicketCheck`` looks for tickets whose event is about to start.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from .logging import get_logger
from .scheduling import ScheduleSuggestion
from .service import SchedulerService
from .tickets import Overlay

logger = logging.getLogger(__name__)

DAILY_INTERVAL_SECONDS = 86400.0
TICKET_INTERVAL_SECONDS = 1800.0


@dataclass
class CheckReport:
    """Outcome of one check iteration."""

    expired: int = 0
    reconciled: int = 0
    errors: list[str] = field(default_factory=list)
    suggestions: list[ScheduleSuggestion] = field(default_factory=list)

    @property
    def generated(self) -> int:
        return len(self.suggestions)

    @property
    def ok(self) -> bool:
        return not self.errors


class PeriodicCheck:
    """Runs ``_tick`` on a fixed interval in a background task."""

    name = "check"

    def __init__(self, interval_seconds: float) -> None:
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    async def _tick(self) -> None:
        raise NotImplementedError

    async def _loop(self) -> None:
        """Background task for the periodic check."""
        while True:
            try:
                await self._tick()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("%s failed", self.name)
                await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start the background check task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())

    def stop(self) -> None:
        """Stop the background check task."""
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


class DailyCheck(PeriodicCheck):
    """Runs the scheduling check for one user on a fixed interval."""

    name = "Daily check"

    def __init__(
        self,
        service: SchedulerService,
        user_id: str,
        interval_seconds: float = DAILY_INTERVAL_SECONDS,
        on_report: Callable[[CheckReport], Awaitable[None]] | None = None,
    ) -> None:
        super().__init__(interval_seconds)
        self.service = service
        self.user_id = user_id
        self.on_report = on_report

    async def run_once(self) -> CheckReport:
        """Run one check. Each step runs even if an earlier one failed."""
        report = CheckReport()

        result = await self.service.expire_stale()
        if result.success and result.data:
            report.expired = result.data["expired"]
        elif result.error:
            report.errors.append(result.error)

        result = await self.service.reconcile()
        if result.success and result.data:
            report.reconciled = result.data["finalized"]
        elif result.error:
            report.errors.append(result.error)

        result = await self.service.generate_suggestions_for_user(self.user_id)
        if result.data:
            report.suggestions = list(result.data["suggestions"])
            report.errors.extend(result.data["errors"])
        elif result.error:
            report.errors.append(result.error)

        get_logger().log(
            "daily_check",
            user_id=self.user_id,
            expired=report.expired,
            reconciled=report.reconciled,
            generated=report.generated,
            errors=len(report.errors),
        )
        return report

    async def _tick(self) -> None:
        report = await self.run_once()
        if self.on_report is not None:
            await self.on_report(report)


class TicketCheck(PeriodicCheck):
    """Finds tickets entering their active window.

    An overlay is reported once while its ticket stays active; a ticket
    that leaves the window and comes back is reported again.
    """

    name = "Ticket check"

    def __init__(
        self,
        service: SchedulerService,
        interval_seconds: float = TICKET_INTERVAL_SECONDS,
        on_overlays: Callable[[list[Overlay]], Awaitable[None]] | None = None,
    ) -> None:
        super().__init__(interval_seconds)
        self.service = service
        self.on_overlays = on_overlays
        self._shown: set[str] = set()

    async def run_once(self, now: datetime | None = None) -> list[Overlay]:
        """Return overlays that weren't reported by the previous run.

        A failed lookup is logged and returns no overlays.
        """
        result = await self.service.active_tickets(now=now)
        if not result.success or result.data is None:
            logger.warning(f"Ticket check: {result.error}")
            return []

        active: list[Overlay] = result.data["overlays"]
        new = [overlay for overlay in active if overlay.event_id not in self._shown]
        self._shown = {overlay.event_id for overlay in active}

        get_logger().log("ticket_check", active=len(active), new=len(new))
        return new

    async def _tick(self) -> None:
        overlays = await self.run_once()
        if overlays and self.on_overlays is not None:
            await self.on_overlays(overlays)
