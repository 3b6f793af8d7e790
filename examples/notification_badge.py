#!/usr/bin/env python3
"""
Notification badge — keep an unread counter live, with polling fallback.

Subscribes to notification events on the push stream and keeps a local
unread count. When push is unavailable the fallback callback re-reads
the count instead (here: prints what a real client would fetch).

Run with:
    export BARBERSHOP_TOKEN=$(barbershop token user-1 --role CLIENT)
    python examples/notification_badge.py

Backend must be running:
    cd packages/backend && uvicorn barbershop.main:app --port 8000
"""

import asyncio
import os
import sys

from barbershop.client import BroadcastHub, ConnectionManager, RefreshBridge, Session, SSETransport


async def main():
    token = os.environ.get("BARBERSHOP_TOKEN")
    if not token:
        print("Set BARBERSHOP_TOKEN first (barbershop token <user-id>)")
        sys.exit(1)

    unread = {"count": 0}

    def on_notification(event):
        if event.type == "notification:new":
            count = event.payload.unread_count
            unread["count"] = count if count is not None else unread["count"] + 1
        elif event.type == "notification:read":
            unread["count"] = event.payload.unread_count
        print(f"  badge: {unread['count']}")

    def refetch_count():
        print("  (fallback) GET /api/notifications/unread-count")

    # Two "tabs" in one process share events through an in-memory hub
    hub = BroadcastHub()
    tab = ConnectionManager(SSETransport(), channel=hub.channel())
    sidebar = ConnectionManager(None, channel=hub.channel())  # relies on the relay only

    tab.add_status_listener(lambda old, new: print(f"[tab] {old.value} → {new.value}"))
    tab.subscribe(["notification:new", "notification:read"], on_notification, refetch_count)
    bridge = RefreshBridge(
        sidebar,
        ["appointment:changed", "review:updated"],
        lambda: print("  [sidebar] refreshing appointments"),
    )

    session = Session.from_token(token)
    try:
        await tab.start(session)
        await sidebar.start(session)
        print("Listening — Ctrl-C to stop")
        await asyncio.Event().wait()
    finally:
        bridge.close()
        await sidebar.close()
        await tab.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nStopped.")
