"""Test fixtures — fake push transports, managers and an HTTP client.

Learn: Nothing here needs Redis or a running server:

1. FakeTransport stands in for the SSE connection. Each open() consumes
   the next scripted step — an exception (failed connect) or a
   FakeConnection the test pushes messages/errors into.
2. make_manager builds ConnectionManagers with millisecond backoff so
   the reconnect state machine runs to completion in a few ticks, and
   closes them after the test.
3. client talks to the FastAPI app in-process via ASGITransport.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from barbershop.auth.jwt import create_access_token
from barbershop.client.manager import ConnectionManager
from barbershop.client.session import Session, SessionStatus
from barbershop.client.transport import PushTransport, TransportError
from barbershop.main import app


# ─── Fake push transport ─────────────────────────────────


class FakeConnection:
    """One scripted push connection."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, raw: str) -> None:
        self.queue.put_nowait(raw)

    def fail(self, reason: str = "connection reset") -> None:
        self.queue.put_nowait(TransportError(reason))

    def end(self) -> None:
        self.queue.put_nowait(None)

    async def messages(self):
        while True:
            item = await self.queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class FakeTransport(PushTransport):
    def __init__(self, script: Optional[list] = None, supported: bool = True):
        self.script = list(script or [])
        self.attempts = 0
        self.connections: list[FakeConnection] = []
        self._supported = supported

    @property
    def supported(self) -> bool:
        return self._supported

    @asynccontextmanager
    async def open(self, session):
        self.attempts += 1
        step = self.script.pop(0) if self.script else TransportError("connection refused")
        if isinstance(step, Exception):
            raise step
        self.connections.append(step)
        try:
            yield step.messages()
        finally:
            step.closed = True


def event_json(
    event_id: str,
    event_type: str = "notification:refresh",
    payload: Optional[dict] = None,
    target: Optional[dict] = None,
) -> str:
    """Wire JSON for one event."""
    return json.dumps({
        "eventId": event_id,
        "type": event_type,
        "payload": payload if payload is not None else {"reason": "test"},
        "target": target or {"users": ["user-1"]},
    })


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Let the event loop run until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


# ─── Fixtures ────────────────────────────────────────────


@pytest.fixture()
def session():
    return Session(status=SessionStatus.AUTHENTICATED, user_id="user-1", role="CLIENT", token="t")


@pytest_asyncio.fixture()
async def make_manager():
    """Factory for ConnectionManagers with fast backoff; closed after the test."""
    managers: list[ConnectionManager] = []

    def factory(transport=None, channel=None, **overrides) -> ConnectionManager:
        options = {
            "reconnect_base": 0.001,
            "reconnect_cap": 0.01,
            "fallback_interval": 60.0,
        }
        options.update(overrides)
        manager = ConnectionManager(transport, channel, **options)
        managers.append(manager)
        return manager

    yield factory

    for manager in managers:
        await manager.close()


@pytest.fixture()
def access_token():
    return create_access_token("user-1", role="CLIENT")


@pytest_asyncio.fixture()
async def client():
    """HTTP client against the app (no lifespan → no Redis)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
