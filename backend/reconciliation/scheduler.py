"""
Archive Scheduler

Recurring background trigger for the booking archiver.

Runs are laid out by a dateutil rrule anchored at local midnight in the
configured timezone (default: every 24 hours, Africa/Lagos). Each run is
fire-and-forget: failures are logged and reported, and the loop carries on to
the next occurrence. There is no retry between occurrences.

Usage:
    scheduler = ArchiveScheduler(job=run_archive, interval_hours=24, timezone_name="Africa/Lagos")
    scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from dateutil import tz
from dateutil.rrule import HOURLY, rrule

from logging_config import set_trigger_context
from sentry_integration import capture_exception

logger = logging.getLogger(__name__)


class ArchiveScheduler:

    def __init__(
        self,
        job: Callable[[], Awaitable[Any]],
        interval_hours: int = 24,
        timezone_name: str = "Africa/Lagos",
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            job: Coroutine function run on every occurrence
            interval_hours: Hours between runs
            timezone_name: IANA timezone the schedule is anchored in
            clock: Returns the current aware datetime (for tests)
        """
        zone = tz.gettz(timezone_name)
        if zone is None:
            raise ValueError(f"Unknown timezone: {timezone_name}")
        if interval_hours < 1:
            raise ValueError("interval_hours must be at least 1")

        self.job = job
        self.interval_hours = interval_hours
        self.timezone_name = timezone_name
        self.zone = zone
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.last_run_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _rule(self, moment: datetime) -> rrule:
        local = moment.astimezone(self.zone)
        anchor = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return rrule(HOURLY, interval=self.interval_hours, dtstart=anchor)

    def next_run_after(self, moment: datetime) -> datetime:
        """First scheduled occurrence strictly after `moment`."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return self._rule(moment).after(moment, inc=False)

    async def run_once(self) -> Optional[Any]:
        """Run the job now. Errors are logged, never raised."""
        self.last_run_at = self.clock()
        try:
            result = await self.job()
            logger.info("Scheduled archive run completed")
            return result
        except Exception as e:
            logger.error(f"Scheduled archive run failed: {e}")
            capture_exception(e, job="archive_old_bookings")
            return None

    async def _loop(self):
        set_trigger_context("schedule")
        logger.info(
            f"Archive scheduler started (every {self.interval_hours}h, timezone={self.timezone_name})"
        )
        next_run = self.next_run_after(self.clock())
        while True:
            delay = max((next_run - self.clock()).total_seconds(), 0)
            logger.info(f"Next archive run at {next_run.isoformat()}")
            await asyncio.sleep(delay)
            await self.run_once()
            # Always past the occurrence just run, even if the clock lags the sleep
            next_run = self.next_run_after(max(next_run, self.clock()))

    def start(self):
        """Start the background loop. Must be called from a running event loop."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="archive-scheduler")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Archive scheduler stopped")
