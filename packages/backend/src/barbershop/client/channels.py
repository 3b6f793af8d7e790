"""Broadcast channels — the shared medium between tabs of one session.

Learn: A channel is fire-and-forget, like a browser BroadcastChannel:
- open(on_message) starts delivery of other participants' messages
- post_message(msg) is non-blocking and never delivers to the sender
- close() stops delivery

Two implementations:
- BroadcastHub / LocalBroadcastChannel — tabs living in one process
- RedisBroadcastChannel — tabs in different processes, via Redis pub/sub
  on a channel scoped to the user, so only the same session's tabs share
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Callable, Optional

import redis.asyncio as aioredis
import structlog

from barbershop.config import settings

logger = structlog.get_logger()

MessageCallback = Callable[[dict], None]


class BroadcastChannel(ABC):
    """Abstract base for cross-tab channels."""

    @abstractmethod
    async def open(self, on_message: MessageCallback) -> None:
        """Start receiving messages posted by other participants."""

    @abstractmethod
    def post_message(self, message: dict) -> None:
        """Send a message to every other participant (non-blocking)."""

    @abstractmethod
    async def close(self) -> None:
        """Stop receiving and release resources."""


# ─── In-process ──────────────────────────────────────────


class BroadcastHub:
    """Connects LocalBroadcastChannels that share a name."""

    def __init__(self):
        self._members: dict[str, list["LocalBroadcastChannel"]] = {}

    def channel(self, name: Optional[str] = None) -> "LocalBroadcastChannel":
        return LocalBroadcastChannel(self, name or settings.broadcast_channel)

    def _join(self, channel: "LocalBroadcastChannel") -> None:
        self._members.setdefault(channel.name, []).append(channel)

    def _leave(self, channel: "LocalBroadcastChannel") -> None:
        members = self._members.get(channel.name, [])
        if channel in members:
            members.remove(channel)

    def _post(self, sender: "LocalBroadcastChannel", message: dict) -> None:
        loop = asyncio.get_running_loop()
        for member in list(self._members.get(sender.name, [])):
            if member is not sender:
                # Delivered on the next loop iteration, never re-entrant
                loop.call_soon(member._deliver, message)


class LocalBroadcastChannel(BroadcastChannel):
    def __init__(self, hub: BroadcastHub, name: str):
        self.hub = hub
        self.name = name
        self._on_message: Optional[MessageCallback] = None

    async def open(self, on_message: MessageCallback) -> None:
        self._on_message = on_message
        self.hub._join(self)

    def post_message(self, message: dict) -> None:
        if self._on_message is None:
            return
        self.hub._post(self, message)

    async def close(self) -> None:
        self.hub._leave(self)
        self._on_message = None

    def _deliver(self, message: dict) -> None:
        if self._on_message is not None:
            self._on_message(message)


# ─── Redis ───────────────────────────────────────────────


class RedisBroadcastChannel(BroadcastChannel):
    """Cross-process channel over Redis pub/sub.

    Learn: Redis echoes a publish back to the publisher's own subscription,
    so unlike the local channel the sender does hear itself. The relay's
    origin check drops those echoes.

    Two background tasks:
    1. Reader — pubsub.listen() → JSON decode → on_message
    2. Writer — drains an outbox queue into PUBLISH, so post_message
       stays synchronous and dispatch never waits on the network
    """

    def __init__(self, redis: aioredis.Redis, user_id: str, name: Optional[str] = None):
        self.redis = redis
        self.name = f"{name or settings.broadcast_channel}:{user_id}"
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._pubsub = None
        self._reader: Optional[asyncio.Task] = None
        self._writer: Optional[asyncio.Task] = None

    async def open(self, on_message: MessageCallback) -> None:
        self._pubsub = self.redis.pubsub()
        await self._pubsub.subscribe(self.name)
        self._reader = asyncio.create_task(self._read_loop(on_message))
        self._writer = asyncio.create_task(self._write_loop())
        logger.debug("channel.opened", channel=self.name)

    def post_message(self, message: dict) -> None:
        if self._writer is None:
            return
        self._outbox.put_nowait(json.dumps(message))

    async def close(self) -> None:
        for task in (self._reader, self._writer):
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._reader = self._writer = None

        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.name)
            await self._pubsub.close()
            self._pubsub = None

    async def _read_loop(self, on_message: MessageCallback) -> None:
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    data = json.loads(message["data"])
                except (json.JSONDecodeError, TypeError) as e:
                    logger.warning("channel.malformed_message", channel=self.name, error=str(e))
                    continue
                on_message(data)
        except Exception:
            logger.exception("channel.reader_failed", channel=self.name)

    async def _write_loop(self) -> None:
        while True:
            payload = await self._outbox.get()
            try:
                await self.redis.publish(self.name, payload)
            except aioredis.RedisError as e:
                logger.warning("channel.publish_failed", channel=self.name, error=str(e))
