"""Refresh bridge tests — bursts of events collapse into one refresh."""

import asyncio
from unittest.mock import Mock

import pytest

from barbershop.client.bridge import RefreshBridge
from barbershop.client.manager import ConnectionStatus
from barbershop.client.session import Session
from conftest import FakeConnection, FakeTransport, event_json, wait_until


@pytest.mark.asyncio
async def test_burst_of_events_refreshes_once(make_manager, session):
    conn = FakeConnection()
    manager = make_manager(FakeTransport([conn]))
    refresh = Mock()
    bridge = RefreshBridge(manager, ["notification:refresh"], refresh, cooldown=0.02)

    await manager.start(session)
    await wait_until(lambda: manager.status == ConnectionStatus.CONNECTED)
    for index in range(3):
        conn.push(event_json(f"e{index}"))

    await wait_until(lambda: refresh.call_count == 1)
    await asyncio.sleep(0.04)
    assert refresh.call_count == 1
    bridge.close()


@pytest.mark.asyncio
async def test_fallback_triggers_refresh(make_manager):
    manager = make_manager(FakeTransport())
    refresh = Mock()
    await manager.start(Session.anonymous())

    bridge = RefreshBridge(manager, ["*"], refresh, cooldown=0.0)
    await wait_until(lambda: refresh.call_count == 1)
    bridge.close()


@pytest.mark.asyncio
async def test_fallback_ignored_when_disabled(make_manager):
    manager = make_manager(FakeTransport())
    refresh = Mock()
    await manager.start(Session.anonymous())

    bridge = RefreshBridge(manager, ["*"], refresh, refresh_on_fallback=False, cooldown=0.0)
    await asyncio.sleep(0.01)
    refresh.assert_not_called()
    bridge.close()


@pytest.mark.asyncio
async def test_close_cancels_pending_refresh(make_manager):
    manager = make_manager(FakeTransport())
    refresh = Mock()
    await manager.start(Session.anonymous())

    bridge = RefreshBridge(manager, ["*"], refresh, cooldown=0.02)
    assert bridge.pending
    bridge.close()

    await asyncio.sleep(0.04)
    refresh.assert_not_called()
    assert len(manager.registry) == 0


@pytest.mark.asyncio
async def test_async_refresh_callback(make_manager):
    manager = make_manager(FakeTransport())
    calls = []

    async def refresh():
        calls.append("reloaded")

    await manager.start(Session.anonymous())
    bridge = RefreshBridge(manager, ["*"], refresh, cooldown=0.0)
    await wait_until(lambda: calls == ["reloaded"])
    bridge.close()
