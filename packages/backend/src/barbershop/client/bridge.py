"""Refresh bridge — turn realtime events into coalesced refreshes.

Learn: Many consumers don't care what an event says, only that their
data is stale (an admin report, a barber's day view). The bridge
subscribes a refresh callback to some event types (and to fallback
ticks) and collapses bursts into one refresh per cooldown window, so
ten appointment changes in a row cost one reload instead of ten.
"""

import asyncio
import inspect
from typing import Any, Callable, Iterable, Optional

import structlog

from barbershop.client.manager import ConnectionManager
from barbershop.config import settings

logger = structlog.get_logger()


class RefreshBridge:
    def __init__(
        self,
        manager: ConnectionManager,
        events: Iterable[str],
        refresh: Callable[[], Any],
        refresh_on_fallback: bool = True,
        cooldown: Optional[float] = None,
    ):
        self.refresh = refresh
        self.cooldown = settings.refresh_cooldown_seconds if cooldown is None else cooldown
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe = manager.subscribe(
            list(events),
            handler=lambda event: self.request_refresh(),
            on_fallback=self.request_refresh if refresh_on_fallback else None,
        )

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def request_refresh(self) -> None:
        """Schedule a refresh after the cooldown unless one is already pending."""
        if self._handle is not None:
            return
        self._handle = asyncio.get_running_loop().call_later(self.cooldown, self._fire)

    def _fire(self) -> None:
        self._handle = None
        try:
            result = self.refresh()
        except Exception:
            logger.exception("bridge.refresh_error")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def close(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._unsubscribe()
