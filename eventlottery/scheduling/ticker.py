"""Periodic ticker that emits the lottery refresh trigger."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta

logger = logging.getLogger("eventlottery.scheduling.ticker")


class PeriodicTicker:
    """Calls ``emit`` once per ``interval`` until stopped.

    Args:
        interval: Time between ticks.
        emit: Coroutine function run on every tick.
        run_immediately: Tick once on start instead of waiting a full interval.
    """

    def __init__(
        self,
        interval: timedelta,
        emit: Callable[[], Awaitable[None]],
        run_immediately: bool = False,
    ) -> None:
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        self.interval = interval
        self._emit = emit
        self._run_immediately = run_immediately
        self._stopped = asyncio.Event()
        self.ticks = 0

    async def tick(self) -> None:
        self.ticks += 1
        logger.debug(f"Tick {self.ticks}")
        await self._emit()

    def stop(self) -> None:
        self._stopped.set()

    async def run(self) -> None:
        self._stopped.clear()
        if self._run_immediately:
            await self.tick()
        while not self._stopped.is_set():
            try:
                await asyncio.wait_for(
                    self._stopped.wait(), timeout=self.interval.total_seconds()
                )
            except TimeoutError:
                await self.tick()
