"""
Tick scheduler for esdr.

Runs one tick immediately and, in daemon mode, keeps ticking every
``interval_seconds`` until the shutdown event is set.

Invariants:
    - One tick runs to completion before the next starts
    - Shutdown is observed between ticks, never mid-tick
    - A shutdown during the sleep ends it immediately
    - ConfigurationError always propagates; ExternalCallError propagates
      unless keep_going is set, in which case the tick is skipped
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from .errors import ExternalCallError
from .reconcile.engine import TickResult

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs ticks once or on a fixed interval.

    Attributes:
        tick: Coroutine function running one tick
        interval_seconds: Sleep between two ticks in daemon mode
        keep_going: Log tick failures from external calls and continue
        shutdown: Cancellation token set by signal handlers

    Example:
        >>> scheduler = Scheduler(engine.tick, interval_seconds=3600)
        >>> await scheduler.run_forever()
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[TickResult]],
        interval_seconds: float = 3600,
        keep_going: bool = False,
        shutdown: asyncio.Event | None = None,
    ) -> None:
        self.tick = tick
        self.interval_seconds = interval_seconds
        self.keep_going = keep_going
        self.shutdown = shutdown or asyncio.Event()

        self._tick_count = 0
        self._failed_ticks = 0

    @property
    def cancelled(self) -> bool:
        """Whether shutdown was requested."""
        return self.shutdown.is_set()

    def request_shutdown(self) -> None:
        """Stop after the current tick, or right away when sleeping."""
        self.shutdown.set()

    async def run_once(self) -> TickResult:
        """Run a single tick."""
        self._tick_count += 1
        result = await self.tick()
        logger.debug(
            "Tick finished",
            extra={"outcome": result.outcome.value, "reason": result.reason, "tick": self._tick_count},
        )
        return result

    async def run_forever(self) -> None:
        """Tick until shutdown is requested.

        Raises:
            EsdrError: Whatever a tick raised, unless keep_going covers it.
        """
        while not self.cancelled:
            try:
                await self.run_once()
            except ExternalCallError as e:
                if not self.keep_going:
                    raise
                self._failed_ticks += 1
                logger.warning(f"Tick failed, retrying at next interval: {e.message}")

            if await self._sleep():
                break

        logger.info("Shutdown requested, stopping.")

    async def _sleep(self) -> bool:
        """Sleep one interval. Returns True if shutdown was requested."""
        try:
            await asyncio.wait_for(self.shutdown.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            return False
        return True

    @property
    def stats(self) -> dict[str, int]:
        return {"ticks": self._tick_count, "failed_ticks": self._failed_ticks}
