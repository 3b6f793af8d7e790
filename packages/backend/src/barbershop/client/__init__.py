"""Realtime client — the per-tab side of push delivery.

Learn: One ConnectionManager per tab (UI context, worker, CLI session)
keeps at most one push connection alive, dedups events, relays them to
sibling tabs and degrades to polling when push is unavailable.

    from barbershop.client import ConnectionManager, Session, SSETransport

    manager = ConnectionManager(SSETransport())
    manager.subscribe("*", print)
    await manager.start(Session.from_token(token))
"""

from barbershop.client.bridge import RefreshBridge
from barbershop.client.channels import (
    BroadcastChannel,
    BroadcastHub,
    LocalBroadcastChannel,
    RedisBroadcastChannel,
)
from barbershop.client.manager import ConnectionManager, ConnectionStatus, reconnect_delay
from barbershop.client.session import Session, SessionStatus
from barbershop.client.transport import PushTransport, SSETransport, TransportError

__all__ = [
    "BroadcastChannel",
    "BroadcastHub",
    "ConnectionManager",
    "ConnectionStatus",
    "LocalBroadcastChannel",
    "PushTransport",
    "RedisBroadcastChannel",
    "RefreshBridge",
    "SSETransport",
    "Session",
    "SessionStatus",
    "TransportError",
    "reconnect_delay",
]
