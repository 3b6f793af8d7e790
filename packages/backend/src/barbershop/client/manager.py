"""Connection manager — one push connection per tab, with graceful degradation.

Learn: The manager owns everything a tab needs for realtime updates:
the push connection, the subscription registry, the cross-tab relay and
the fallback poller. State machine:

    connecting --open--> connected --error--> reconnecting --open--> connected
    reconnecting --error, attempts < 5--> reconnecting (backoff delay)
    reconnecting --error, attempts >= 5--> fallback
    connecting --no session / unsupported transport--> fallback
    fallback --start() with a session--> connecting

`connected` and `fallback` are the resting states. Entering `fallback`
starts the poller; leaving it stops the poller.

Backoff after attempt n is min(cap, base * 2^n): 2s, 4s, 8s, 16s with
the defaults, then the fifth error gives up on push for this tab.

Everything runs on one event loop; handlers run to completion before
the next message is read, so no locking is needed.
"""

import asyncio
import uuid
from enum import Enum
from typing import Callable, Iterable, Optional, Union

import structlog
from pydantic import ValidationError

from barbershop.client.channels import BroadcastChannel
from barbershop.client.poller import FallbackPoller
from barbershop.client.registry import EventHandler, FallbackCallback, SubscriptionRegistry
from barbershop.client.relay import CrossTabRelay
from barbershop.client.session import Session, SessionStatus
from barbershop.client.transport import PushTransport, TransportError
from barbershop.config import settings
from barbershop.schemas.realtime import RealtimeEvent, parse_event

logger = structlog.get_logger()


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FALLBACK = "fallback"


def reconnect_delay(
    attempts: int,
    base: Optional[float] = None,
    cap: Optional[float] = None,
) -> float:
    """Seconds to wait before reconnect attempt number `attempts` (n >= 1)."""
    base = settings.reconnect_base_seconds if base is None else base
    cap = settings.reconnect_max_seconds if cap is None else cap
    return min(cap, base * 2 ** attempts)


StatusListener = Callable[[ConnectionStatus, ConnectionStatus], None]


class ConnectionManager:
    """Per-tab realtime client.

    Usage:
        async with ConnectionManager(SSETransport(), channel=hub.channel()) as live:
            unsubscribe = live.subscribe(
                ["notification:new", "notification:read"],
                handler=on_notification,
                on_fallback=refresh_badge,
            )
            await live.start(Session.from_token(token))
    """

    def __init__(
        self,
        transport: Optional[PushTransport],
        channel: Optional[BroadcastChannel] = None,
        *,
        tab_id: Optional[str] = None,
        max_reconnect_attempts: Optional[int] = None,
        reconnect_base: Optional[float] = None,
        reconnect_cap: Optional[float] = None,
        fallback_interval: Optional[float] = None,
        seen_events_limit: Optional[int] = None,
    ):
        self.transport = transport
        self.tab_id = tab_id or uuid.uuid4().hex
        self.max_reconnect_attempts = (
            max_reconnect_attempts or settings.max_reconnect_attempts
        )
        self.reconnect_base = (
            settings.reconnect_base_seconds if reconnect_base is None else reconnect_base
        )
        self.reconnect_cap = (
            settings.reconnect_max_seconds if reconnect_cap is None else reconnect_cap
        )

        self.registry = SubscriptionRegistry(seen_events_limit or settings.seen_events_limit)
        self.poller = FallbackPoller(self.registry.run_fallbacks, fallback_interval)
        self.relay = (
            CrossTabRelay(channel, self.tab_id, self.dispatch) if channel is not None else None
        )

        self._status = ConnectionStatus.CONNECTING
        self._status_listeners: list[StatusListener] = []
        self._session: Optional[Session] = None
        self._attempts = 0
        self._active = False  # push delivery wanted (cleared on teardown/fallback)
        self._connection_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None

    # ─── State ───────────────────────────────────────────

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_fallback(self) -> bool:
        return self._status == ConnectionStatus.FALLBACK

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def has_pending_reconnect(self) -> bool:
        return self._reconnect_handle is not None

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Call listener(old, new) on every status change. Returns a remover."""
        self._status_listeners.append(listener)

        def remove() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return remove

    def _set_status(self, status: ConnectionStatus) -> None:
        old = self._status
        if status == old:
            return
        self._status = status
        logger.info("realtime.status", tab_id=self.tab_id, old=old.value, new=status.value)

        if status == ConnectionStatus.FALLBACK:
            self.poller.start()
        elif old == ConnectionStatus.FALLBACK:
            self.poller.cancel()

        for listener in list(self._status_listeners):
            try:
                listener(old, status)
            except Exception:
                logger.exception("realtime.status_listener_error")

    # ─── Lifecycle ───────────────────────────────────────

    async def start(self, session: Session) -> None:
        """(Re)start for a session. Call again whenever the session changes."""
        if session.status == SessionStatus.LOADING:
            return

        await self._teardown()
        self._session = session

        if not session.is_authenticated:
            logger.info("realtime.no_session", tab_id=self.tab_id)
            self._activate_fallback()
            return

        if self.relay is not None:
            await self.relay.start()

        if self.transport is None or not self.transport.supported:
            logger.info("realtime.transport_unsupported", tab_id=self.tab_id)
            self._activate_fallback()
            return

        self._active = True
        self._attempts = 0
        self._connect()

    async def close(self) -> None:
        """Close the connection and cancel every timer (component unmount)."""
        await self._teardown()
        await self.poller.stop()
        await self.registry.drain()
        # Back to the initial state so a later start() begins fresh
        self._status = ConnectionStatus.CONNECTING

    async def __aenter__(self) -> "ConnectionManager":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _teardown(self) -> None:
        self._active = False
        self._cancel_reconnect()
        await self._close_connection()
        if self.relay is not None:
            await self.relay.stop()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    async def _close_connection(self) -> None:
        task = self._connection_task
        self._connection_task = None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("realtime.connection_task_failed", tab_id=self.tab_id)

    # ─── Connection ──────────────────────────────────────

    def _connect(self) -> None:
        self._reconnect_handle = None
        if not self._active:
            return
        self._set_status(ConnectionStatus.CONNECTING)
        self._connection_task = asyncio.get_running_loop().create_task(
            self._run_connection()
        )

    async def _run_connection(self) -> None:
        try:
            async with self.transport.open(self._session) as messages:
                self._on_open()
                async for raw in messages:
                    self._on_message(raw)
        except TransportError as e:
            self._on_error(str(e))
            return
        except Exception as e:
            logger.exception("realtime.connection_error", tab_id=self.tab_id)
            self._on_error(f"{type(e).__name__}: {e}")
            return
        self._on_error("stream closed by server")

    def _on_open(self) -> None:
        self._attempts = 0
        self._set_status(ConnectionStatus.CONNECTED)

    def _on_message(self, raw: str) -> None:
        try:
            event = parse_event(raw)
        except ValidationError as e:
            logger.warning("realtime.malformed_event", tab_id=self.tab_id, error=str(e))
            return
        self.dispatch(event)

    def _on_error(self, reason: str) -> None:
        self._connection_task = None
        if not self._active:
            return

        self._set_status(ConnectionStatus.RECONNECTING)
        self._attempts += 1

        if self._attempts >= self.max_reconnect_attempts:
            logger.warning(
                "realtime.giving_up",
                tab_id=self.tab_id,
                attempts=self._attempts,
                reason=reason,
            )
            self._activate_fallback()
            return

        delay = reconnect_delay(self._attempts, self.reconnect_base, self.reconnect_cap)
        logger.info(
            "realtime.reconnect_scheduled",
            tab_id=self.tab_id,
            attempts=self._attempts,
            delay=delay,
            reason=reason,
        )
        self._cancel_reconnect()
        self._reconnect_handle = asyncio.get_running_loop().call_later(delay, self._connect)

    def _activate_fallback(self) -> None:
        self._active = False
        self._cancel_reconnect()
        task = self._connection_task
        self._connection_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        self._set_status(ConnectionStatus.FALLBACK)
        self.poller.start()

    # ─── Subscriptions ───────────────────────────────────

    def subscribe(
        self,
        events: Union[str, Iterable[str]],
        handler: EventHandler,
        on_fallback: Optional[FallbackCallback] = None,
    ) -> Callable[[], None]:
        """Register interest in event types ("*" for all). Returns unsubscribe."""
        subscription = self.registry.add(events, handler, on_fallback)

        # Don't make a newly mounted component wait for the next poll tick
        if self.is_fallback:
            self.registry.run_fallback(subscription)

        def unsubscribe() -> None:
            self.registry.remove(subscription.id)

        return unsubscribe

    def dispatch(self, event: RealtimeEvent) -> None:
        """Deliver an event locally (once per id) and relay it to sibling tabs."""
        if not self.registry.dispatch(event):
            return
        if self.relay is not None:
            self.relay.broadcast(event)
