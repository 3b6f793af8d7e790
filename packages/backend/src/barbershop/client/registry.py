"""Subscription registry — routes each distinct event to interested handlers.

Learn: UI components (badge counters, chat indicators, dashboards)
register interest in event types. The registry guarantees that an event
id is dispatched at most once per tab, whether it arrived over the push
connection, through the cross-tab relay, or both.

Everything here runs on the event loop thread; no locking needed.
"""

import asyncio
import inspect
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Union

import structlog

from barbershop.events.types import ALL_EVENT_TYPES, WILDCARD
from barbershop.schemas.realtime import RealtimeEvent

logger = structlog.get_logger()

EventHandler = Callable[[RealtimeEvent], Any]
FallbackCallback = Callable[[], Any]


@dataclass
class Subscription:
    id: str
    events: frozenset[str]
    handler: EventHandler
    on_fallback: Optional[FallbackCallback] = None

    def matches(self, event_type: str) -> bool:
        return WILDCARD in self.events or event_type in self.events


def normalize_event_filter(events: Union[str, Iterable[str]]) -> frozenset[str]:
    """Accept one type, a list of types, or "*". Unknown types raise ValueError."""
    if isinstance(events, str):
        events = [events]
    selected = frozenset(events)
    if not selected:
        raise ValueError("Subscription needs at least one event type")

    unknown = selected - ALL_EVENT_TYPES - {WILDCARD}
    if unknown:
        raise ValueError(f"Unknown event types: {', '.join(sorted(unknown))}")
    return selected


class SeenEvents:
    """Set of dispatched event ids.

    Unbounded by default. With a limit, the oldest ids are evicted first,
    which re-opens a (very late) duplicate to dispatch.
    """

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit
        self._ids: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, event_id: str) -> bool:
        return event_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, event_id: str) -> None:
        self._ids[event_id] = None
        if self.limit is not None:
            while len(self._ids) > self.limit:
                self._ids.popitem(last=False)


class SubscriptionRegistry:
    """Subscriptions plus the per-tab dedup set."""

    def __init__(self, seen_limit: Optional[int] = None):
        self._subscriptions: dict[str, Subscription] = {}
        self.seen = SeenEvents(seen_limit)
        self._pending: set[asyncio.Future] = set()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, subscription_id: str) -> bool:
        return subscription_id in self._subscriptions

    def add(
        self,
        events: Union[str, Iterable[str]],
        handler: EventHandler,
        on_fallback: Optional[FallbackCallback] = None,
    ) -> Subscription:
        subscription = Subscription(
            id=uuid.uuid4().hex,
            events=normalize_event_filter(events),
            handler=handler,
            on_fallback=on_fallback,
        )
        self._subscriptions[subscription.id] = subscription
        return subscription

    def remove(self, subscription_id: str) -> None:
        self._subscriptions.pop(subscription_id, None)

    def dispatch(self, event: RealtimeEvent) -> bool:
        """Invoke every matching handler once for a new event id.

        Returns False (and does nothing) if the id was already seen.
        """
        if event.event_id in self.seen:
            return False
        self.seen.add(event.event_id)

        for subscription in list(self._subscriptions.values()):
            # Unsubscribed by an earlier handler in this same dispatch
            if subscription.id not in self._subscriptions:
                continue
            if not subscription.matches(event.type):
                continue
            try:
                self._track(subscription.handler(event))
            except Exception:
                logger.exception(
                    "realtime.handler_error",
                    subscription_id=subscription.id,
                    event_type=event.type,
                    event_id=event.event_id,
                )
        return True

    def run_fallback(self, subscription: Subscription) -> None:
        if subscription.on_fallback is None:
            return
        try:
            self._track(subscription.on_fallback())
        except Exception:
            logger.exception("realtime.fallback_error", subscription_id=subscription.id)

    def run_fallbacks(self) -> None:
        """Invoke every registered fallback callback once."""
        for subscription in list(self._subscriptions.values()):
            if subscription.id in self._subscriptions:
                self.run_fallback(subscription)

    def _track(self, result: Any) -> None:
        """Schedule coroutine results so async callbacks run to completion."""
        if not inspect.isawaitable(result):
            return
        task = asyncio.ensure_future(result)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("realtime.callback_failed", error=str(exc), exc_info=exc)

    async def drain(self) -> None:
        """Wait for scheduled async callbacks (used on close and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
