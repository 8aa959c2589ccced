"""
Unit tests for the tick scheduler.

Tests cover:
- Single runs
- Daemon loop and shutdown
- Fail-fast and keep-going error handling
"""

import asyncio

import pytest

from esdr.config import Role
from esdr.errors import ConfigurationError, ProbeError
from esdr.reconcile import TickOutcome, TickResult
from esdr.scheduler import Scheduler


class ScriptedTick:
    """Tick returning or raising scripted values, then waiting."""

    def __init__(self, *steps, on_call=None):
        self.steps = list(steps)
        self.count = 0
        self.on_call = on_call

    async def __call__(self) -> TickResult:
        self.count += 1
        if self.on_call:
            self.on_call(self.count)
        step = self.steps.pop(0) if self.steps else None
        if isinstance(step, Exception):
            raise step
        return TickResult(role=Role.PRIMARY, outcome=TickOutcome.WAITING, reason="scripted")


class TestScheduler:
    """Tests for Scheduler."""

    @pytest.mark.asyncio
    async def test_run_once(self):
        tick = ScriptedTick()
        scheduler = Scheduler(tick)

        result = await scheduler.run_once()

        assert result.outcome is TickOutcome.WAITING
        assert tick.count == 1
        assert scheduler.stats == {"ticks": 1, "failed_ticks": 0}

    @pytest.mark.asyncio
    async def test_run_once_propagates(self):
        scheduler = Scheduler(ScriptedTick(ProbeError("Snapshot failed: boom")))
        with pytest.raises(ProbeError):
            await scheduler.run_once()

    @pytest.mark.asyncio
    async def test_run_forever_until_shutdown(self):
        """Ticks repeat every interval until shutdown is requested."""
        scheduler = Scheduler(ScriptedTick(), interval_seconds=0.01)
        tick = ScriptedTick(on_call=lambda n: n == 3 and scheduler.request_shutdown())
        scheduler.tick = tick

        await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        assert tick.count == 3
        assert scheduler.cancelled

    @pytest.mark.asyncio
    async def test_shutdown_interrupts_sleep(self):
        """A shutdown during the interval ends the loop right away."""
        tick = ScriptedTick()
        scheduler = Scheduler(tick, interval_seconds=3600)

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.05)
        scheduler.request_shutdown()
        await asyncio.wait_for(task, timeout=5)

        assert tick.count == 1

    @pytest.mark.asyncio
    async def test_shutdown_before_start(self):
        """No tick runs once shutdown was requested."""
        tick = ScriptedTick()
        shutdown = asyncio.Event()
        shutdown.set()
        scheduler = Scheduler(tick, shutdown=shutdown)

        await scheduler.run_forever()

        assert tick.count == 0

    @pytest.mark.asyncio
    async def test_fail_fast_by_default(self):
        tick = ScriptedTick(None, ProbeError("Snapshot error: snapshot state is FAILED"))
        scheduler = Scheduler(tick, interval_seconds=0.01)

        with pytest.raises(ProbeError):
            await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        assert tick.count == 2

    @pytest.mark.asyncio
    async def test_keep_going_skips_failed_tick(self, caplog):
        """External call failures are logged and retried next interval."""
        scheduler = Scheduler(ScriptedTick(), interval_seconds=0.01, keep_going=True)
        tick = ScriptedTick(
            ProbeError("Snapshot failed: busy"),
            on_call=lambda n: n == 2 and scheduler.request_shutdown(),
        )
        scheduler.tick = tick

        await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        assert tick.count == 2
        assert scheduler.stats["failed_ticks"] == 1
        assert "Snapshot failed: busy" in caplog.text

    @pytest.mark.asyncio
    async def test_keep_going_does_not_cover_configuration_errors(self):
        tick = ScriptedTick(ConfigurationError("bad"))
        scheduler = Scheduler(tick, interval_seconds=0.01, keep_going=True)

        with pytest.raises(ConfigurationError):
            await scheduler.run_forever()
