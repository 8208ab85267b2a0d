"""
Unit Tests for Vehicle Change Debouncer

Run with: pytest tests/test_debounce.py -v
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from reconciliation.debounce import VehicleChangeDebouncer

DELAY = 0.05


class TestVehicleChangeDebouncer:

    @pytest.mark.asyncio
    async def test_burst_coalesced_into_one_run_with_latest_snapshot(self):
        handler = AsyncMock()
        debouncer = VehicleChangeDebouncer(handler, delay_seconds=DELAY)

        debouncer.notify("V1", {"rev": 1})
        await asyncio.sleep(DELAY / 5)
        debouncer.notify("V1", {"rev": 2})
        debouncer.notify("V1", {"rev": 3})
        await debouncer.wait_idle()

        handler.assert_awaited_once_with("V1", {"rev": 3})
        assert debouncer.pending == []

    @pytest.mark.asyncio
    async def test_vehicles_settle_independently(self):
        handler = AsyncMock()
        debouncer = VehicleChangeDebouncer(handler, delay_seconds=DELAY)

        debouncer.notify("V2", {"rev": 1})
        debouncer.notify("V1", {"rev": 1})
        assert debouncer.pending == ["V1", "V2"]

        await debouncer.wait_idle()

        assert handler.await_count == 2
        assert {c.args[0] for c in handler.await_args_list} == {"V1", "V2"}

    @pytest.mark.asyncio
    async def test_nothing_runs_before_delay(self):
        handler = AsyncMock()
        debouncer = VehicleChangeDebouncer(handler, delay_seconds=10)

        debouncer.notify("V1", {"rev": 1})
        await asyncio.sleep(0.01)

        handler.assert_not_awaited()
        await debouncer.cancel_all()

    @pytest.mark.asyncio
    async def test_cancel_all_drops_pending_runs(self):
        handler = AsyncMock()
        debouncer = VehicleChangeDebouncer(handler, delay_seconds=DELAY)

        debouncer.notify("V1", {"rev": 1})
        await debouncer.cancel_all()
        await asyncio.sleep(DELAY * 2)

        handler.assert_not_awaited()
        assert debouncer.pending == []

    @pytest.mark.asyncio
    async def test_change_during_run_schedules_another(self):
        started = asyncio.Event()
        release = asyncio.Event()
        calls = []

        async def handler(vehicle_id, snapshot):
            calls.append(snapshot)
            if len(calls) == 1:
                started.set()
                await release.wait()

        debouncer = VehicleChangeDebouncer(handler, delay_seconds=DELAY)

        debouncer.notify("V1", {"rev": 1})
        await started.wait()
        debouncer.notify("V1", {"rev": 2})
        release.set()
        await debouncer.wait_idle()

        assert calls == [{"rev": 1}, {"rev": 2}]

    @pytest.mark.asyncio
    async def test_handler_error_logged_and_reported(self):
        handler = AsyncMock(side_effect=RuntimeError("store unavailable"))
        debouncer = VehicleChangeDebouncer(handler, delay_seconds=DELAY)

        with patch("reconciliation.debounce.capture_exception") as mock_capture:
            debouncer.notify("V1", {"rev": 1})
            await debouncer.wait_idle()

        mock_capture.assert_called_once()
        assert isinstance(mock_capture.call_args[0][0], RuntimeError)
        assert mock_capture.call_args[1] == {"vehicle_id": "V1"}

        # Still usable after a failure
        handler.side_effect = None
        debouncer.notify("V1", {"rev": 2})
        await debouncer.wait_idle()
        assert handler.await_count == 2
