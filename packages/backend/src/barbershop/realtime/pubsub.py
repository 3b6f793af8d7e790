"""Redis pub/sub + in-process broker — server-side event fanout.

Learn: Events flow through two hops:
1. Emitters → Redis PUBLISH on one events channel (any process can emit)
2. Each API process runs RealtimeBroker.listen(), which fans every event
   out to the SSE connections it holds in memory

Redis pub/sub is fire-and-forget. If no one is listening, the message
is lost. That is fine for realtime UI updates: clients fall back to
polling and can always query the API to catch up.

When Redis is unavailable (local dev, tests) emit_realtime_event
publishes straight into the local broker, so a single process still works.
"""

import asyncio
import time
import uuid
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
import structlog
from pydantic import ValidationError

from barbershop.config import settings
from barbershop.events.types import LIVE_HEARTBEAT, LIVE_STATUS
from barbershop.schemas.realtime import (
    LiveHeartbeatEvent,
    LiveStatusEvent,
    RealtimeEvent,
    RealtimeTarget,
    event_to_json,
    parse_event,
    parse_event_dict,
)

logger = structlog.get_logger()

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    _redis = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.close()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def new_event_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    return int(time.time() * 1000)


# ─── Broker ──────────────────────────────────────────────


class RealtimeBroker:
    """In-process fanout of events to the stream connections of this process.

    Learn: Listeners are plain callables invoked synchronously in
    registration order. The SSE endpoint registers a listener that
    filters by session and pushes into its per-connection queue.
    """

    def __init__(self):
        self._listeners: dict[int, Callable[[RealtimeEvent], None]] = {}
        self._next_id = 0

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Callable[[RealtimeEvent], None]) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it."""
        listener_id = self._next_id
        self._next_id += 1
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def publish(self, event: RealtimeEvent) -> None:
        """Deliver an event to every current listener."""
        for listener in list(self._listeners.values()):
            try:
                listener(event)
            except Exception:
                logger.exception("broker.listener_error", event_id=event.event_id)

    async def listen(self, redis: aioredis.Redis, channel: Optional[str] = None) -> None:
        """Forward events from the Redis events channel to local listeners.

        Runs until cancelled (lifespan shutdown).
        """
        channel = channel or settings.realtime_events_channel
        pubsub = redis.pubsub()
        await pubsub.subscribe(channel)
        logger.info("broker.listening", channel=channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    event = parse_event(message["data"])
                except ValidationError as e:
                    logger.warning("broker.malformed_event", error=str(e))
                    continue
                self.publish(event)
        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.close()


# Singleton — one broker per API process
broker = RealtimeBroker()


# ─── Emitting ────────────────────────────────────────────


async def emit_realtime_event(
    event_type: str,
    payload: dict[str, Any],
    target: Optional[RealtimeTarget] = None,
) -> RealtimeEvent:
    """Stamp an event with id + timestamp and publish it.

    Learn: Callers (booking, review and notification services) emit
    after their database writes. The returned event is what subscribers
    will see, which is handy for tests and for logging the event id.
    """
    event = parse_event_dict({
        "eventId": new_event_id(),
        "type": event_type,
        "payload": payload,
        "target": target or RealtimeTarget(),
        "createdAt": now_ms(),
    })

    if _redis is not None:
        await _redis.publish(settings.realtime_events_channel, event_to_json(event))
    else:
        broker.publish(event)

    logger.info("realtime.emitted", event_type=event_type, event_id=event.event_id)
    return event


# ─── Session filtering ───────────────────────────────────


def event_matches_session(event: RealtimeEvent, identity) -> bool:
    """Whether an event's target includes the given identity.

    Learn: Broadcast events reach everyone. Otherwise the user must be
    listed by id, or hold one of the listed roles. An empty target
    reaches nobody.
    """
    target = event.target
    if target.broadcast:
        return True

    matches_user = bool(target.users) and identity.user_id in target.users
    matches_role = bool(target.roles) and bool(identity.role) and identity.role in target.roles
    return matches_user or matches_role


def build_live_status_event(status: str, target: RealtimeTarget) -> LiveStatusEvent:
    return LiveStatusEvent(
        type=LIVE_STATUS,
        payload={"status": status},
        target=target,
        event_id=new_event_id(),
        created_at=now_ms(),
    )


def build_heartbeat_event(user_id: str) -> LiveHeartbeatEvent:
    ts = now_ms()
    return LiveHeartbeatEvent(
        type=LIVE_HEARTBEAT,
        payload={"ts": ts},
        target=RealtimeTarget(users=[user_id]),
        event_id=f"heartbeat-{ts}",
        created_at=ts,
    )
