"""Fallback poller — eventual consistency when push delivery is unavailable.

Learn: While the manager sits in "fallback", subscribers get their
fallback callback once immediately and then every interval (30s by
default). Those callbacks re-fetch whatever the push stream would have
told them about (badge counts, lists, dashboards).

Same shape as the dispatcher-era fallback poll loop: a background task
that sleeps, ticks, logs errors and keeps going until stopped.
"""

import asyncio
from typing import Callable, Optional

import structlog

from barbershop.config import settings

logger = structlog.get_logger()


class FallbackPoller:
    """Runs a tick callback immediately and then on a fixed interval.

    Usage:
        poller = FallbackPoller(registry.run_fallbacks)
        poller.start()   # ticks now, then every interval
        await poller.stop()
    """

    def __init__(self, tick: Callable[[], None], interval: Optional[float] = None):
        self.tick = tick
        self.interval = interval or settings.fallback_interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Tick once now and start the interval. No-op if already running."""
        if self.running:
            return
        logger.info("poller.started", interval=self.interval)
        self._run_tick()
        self._task = asyncio.get_running_loop().create_task(self._loop())

    def cancel(self) -> None:
        """Stop the interval without waiting (safe from sync callbacks)."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("poller.stopped")

    async def stop(self) -> None:
        task = self._task
        self.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._run_tick()

    def _run_tick(self) -> None:
        try:
            self.tick()
        except Exception:
            logger.exception("poller.tick_error")
