"""Push transports — the long-lived connection a tab receives events on.

Learn: The connection manager doesn't care how bytes arrive. A transport
only has to:
1. Say whether it can run in this environment (`supported`)
2. Open a connection as an async context manager that yields an async
   iterator of raw message texts (one JSON event per message)
3. Raise TransportError for anything that should trigger a reconnect

The iterator ending normally means the server closed the stream; the
manager treats that like an error, as a browser EventSource does.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Optional

import httpx
import structlog

from barbershop.client.session import Session
from barbershop.config import settings

logger = structlog.get_logger()


class TransportError(Exception):
    """Raised when the push connection fails or cannot be opened."""


class PushTransport(ABC):
    """Abstract base for push transports."""

    @property
    def supported(self) -> bool:
        """Whether this transport can run here. Unsupported → polling fallback."""
        return True

    @abstractmethod
    def open(self, session: Session) -> AsyncContextManager[AsyncIterator[str]]:
        """Open a connection for the session, yielding message texts."""


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Turn SSE lines into message payloads.

    Learn: An SSE message is one or more `data:` lines ended by a blank
    line; multiple data lines are joined with newlines. Lines starting
    with ':' are comments (keepalives). `event:`, `id:` and `retry:`
    fields are ignored — every message on our stream is a JSON event.
    """
    data_lines: list[str] = []
    async for line in lines:
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data_lines.append(value)

    # A trailing message without its blank line is incomplete and dropped


class SSETransport(PushTransport):
    """Server-sent events over httpx streaming.

    Usage:
        transport = SSETransport("http://localhost:8000/api/realtime")
        async with transport.open(session) as messages:
            async for raw in messages:
                ...
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        read_timeout: Optional[float] = None,
    ):
        self.url = url or settings.realtime_url
        self._client = client
        # Three missed heartbeats → treat the stream as dead
        self.read_timeout = read_timeout or settings.heartbeat_interval_seconds * 3

    @asynccontextmanager
    async def open(self, session: Session) -> AsyncIterator[AsyncIterator[str]]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if session.token:
            headers["Authorization"] = f"Bearer {session.token}"

        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=self.read_timeout),
        )
        try:
            async with client.stream("GET", self.url, headers=headers) as response:
                if response.status_code != 200:
                    raise TransportError(
                        f"Push endpoint returned {response.status_code}"
                    )
                content_type = response.headers.get("content-type", "")
                if not content_type.startswith("text/event-stream"):
                    raise TransportError(f"Unexpected content type: {content_type!r}")

                logger.debug("transport.opened", url=self.url)
                yield iter_sse_data(response.aiter_lines())
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()
