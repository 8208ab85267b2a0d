"""
Vehicle Change Debouncer

Coalesces bursts of vehicle change notifications before seat reconciliation runs.

- One pending timer per vehicle id
- A new notification for the same vehicle resets its timer and replaces the
  snapshot with the latest one
- When the settling delay elapses the handler runs once with the latest snapshot
- Handler failures are logged and reported to Sentry, never raised

Once a handler has started it is no longer pending: a notification arriving
mid-run schedules a fresh reconciliation instead of cancelling the write.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from logging_config import set_trigger_context
from sentry_integration import capture_exception

logger = logging.getLogger(__name__)

VehicleChangeHandler = Callable[[str, Optional[Dict[str, Any]]], Awaitable[Any]]


class VehicleChangeDebouncer:

    def __init__(self, handler: VehicleChangeHandler, delay_seconds: float = 180):
        """
        Args:
            handler: Coroutine function called as handler(vehicle_id, snapshot)
            delay_seconds: Settling delay applied after the last notification
        """
        self.handler = handler
        self.delay_seconds = delay_seconds
        self._timers: Dict[str, asyncio.Task] = {}
        self._snapshots: Dict[str, Optional[Dict[str, Any]]] = {}
        self._running: set = set()

    @property
    def pending(self) -> List[str]:
        """Vehicle ids waiting for their settling delay to elapse."""
        return sorted(self._timers)

    def notify(self, vehicle_id: str, snapshot: Optional[Dict[str, Any]] = None):
        """
        Record a change to a vehicle and (re)start its settling timer.

        Must be called from inside a running event loop.
        """
        existing = self._timers.pop(vehicle_id, None)
        if existing is not None:
            existing.cancel()
            logger.debug(f"Vehicle {vehicle_id} changed again; settling timer reset")

        self._snapshots[vehicle_id] = snapshot
        self._timers[vehicle_id] = asyncio.get_running_loop().create_task(
            self._settle_then_run(vehicle_id),
            name=f"vehicle-settle-{vehicle_id}"
        )

    async def _settle_then_run(self, vehicle_id: str):
        await asyncio.sleep(self.delay_seconds)
        set_trigger_context("vehicle_change")

        # No longer pending; later notifications start a new timer
        task = self._timers.pop(vehicle_id, None)
        snapshot = self._snapshots.pop(vehicle_id, None)
        if task is not None:
            self._running.add(task)

        try:
            await self.handler(vehicle_id, snapshot)
        except Exception as e:
            logger.error(f"Error processing vehicle update for {vehicle_id}: {e}")
            capture_exception(e, vehicle_id=vehicle_id)
        finally:
            if task is not None:
                self._running.discard(task)

    async def wait_idle(self):
        """Wait until every pending and running handler has finished."""
        while self._timers or self._running:
            tasks = list(self._timers.values()) + list(self._running)
            await asyncio.gather(*tasks, return_exceptions=True)

    async def cancel_all(self):
        """Cancel every pending timer. Handlers already running are awaited."""
        timers = list(self._timers.values())
        self._timers.clear()
        self._snapshots.clear()
        for task in timers:
            task.cancel()
        await asyncio.gather(*timers, *list(self._running), return_exceptions=True)
