"""Server-sent events endpoint — realtime event delivery to clients.

Learn: Each client opens GET /api/realtime with a JWT (Bearer header or
?token= query param). The handler:
1. Authenticates the token (401 before any streaming starts)
2. Sends an initial live:status "connected" event
3. Forwards every broker event whose target matches the session
4. Sends a live:heartbeat on a fixed interval so proxies keep the
   connection open and clients can tell a dead stream from a quiet one
5. Unsubscribes from the broker when the client goes away

This is a long-lived connection — one per user per tab (fewer when the
client relays events between tabs).
"""

import asyncio
from typing import AsyncIterator, Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from barbershop.auth.dependencies import CurrentIdentity, get_current_user
from barbershop.config import settings
from barbershop.realtime.pubsub import (
    RealtimeBroker,
    broker,
    build_heartbeat_event,
    build_live_status_event,
    event_matches_session,
)
from barbershop.schemas.realtime import RealtimeEvent, RealtimeTarget, event_to_json

logger = structlog.get_logger()
router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}


def format_sse(event: RealtimeEvent) -> str:
    """Frame one event as an SSE `data:` message."""
    return f"data: {event_to_json(event)}\n\n"


async def event_stream(
    request: Request,
    identity: CurrentIdentity,
    source: Optional[RealtimeBroker] = None,
    heartbeat_interval: Optional[float] = None,
) -> AsyncIterator[str]:
    """Yield SSE frames for one connection until the client disconnects."""
    source = source or broker
    interval = heartbeat_interval or settings.heartbeat_interval_seconds
    queue: asyncio.Queue[RealtimeEvent] = asyncio.Queue()

    def listener(event: RealtimeEvent) -> None:
        if event_matches_session(event, identity):
            queue.put_nowait(event)

    unsubscribe = source.subscribe(listener)
    logger.info("stream.opened", user_id=identity.user_id)

    loop = asyncio.get_running_loop()
    next_heartbeat = loop.time() + interval

    try:
        yield format_sse(
            build_live_status_event("connected", RealtimeTarget(users=[identity.user_id]))
        )

        while True:
            if await request.is_disconnected():
                break

            timeout = max(0.0, next_heartbeat - loop.time())
            try:
                event = await asyncio.wait_for(queue.get(), timeout=timeout)
            except asyncio.TimeoutError:
                event = build_heartbeat_event(identity.user_id)
                next_heartbeat = loop.time() + interval

            yield format_sse(event)
    finally:
        unsubscribe()
        logger.info("stream.closed", user_id=identity.user_id)


@router.get("/realtime")
async def realtime_stream(
    request: Request,
    identity: CurrentIdentity = Depends(get_current_user),
):
    """Open the push stream for the authenticated user."""
    return StreamingResponse(
        event_stream(request, identity),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
