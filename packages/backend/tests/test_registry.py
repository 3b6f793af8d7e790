"""Subscription registry tests — filtering, dedup, isolation of handler failures."""

import asyncio
from unittest.mock import Mock

import pytest

from barbershop.client.registry import SeenEvents, SubscriptionRegistry, normalize_event_filter
from barbershop.schemas.realtime import parse_event
from conftest import event_json


def _event(event_id, event_type="notification:refresh", payload=None):
    return parse_event(event_json(event_id, event_type, payload))


def test_dispatch_marks_seen_and_skips_duplicates():
    registry = SubscriptionRegistry()
    handler = Mock()
    registry.add("*", handler)

    assert registry.dispatch(_event("e1")) is True
    assert registry.dispatch(_event("e1")) is False
    assert handler.call_count == 1
    assert "e1" in registry.seen


def test_dispatch_only_matching_types():
    registry = SubscriptionRegistry()
    appointments = Mock()
    registry.add(["appointment:changed"], appointments)

    registry.dispatch(_event("e1"))
    registry.dispatch(_event("e2", "appointment:changed", {"appointmentId": "a1", "status": "CONFIRMED"}))

    assert appointments.call_count == 1
    assert appointments.call_args.args[0].payload.appointment_id == "a1"


def test_duplicate_is_seen_even_without_subscribers():
    registry = SubscriptionRegistry()
    registry.dispatch(_event("e1"))

    late = Mock()
    registry.add("*", late)
    registry.dispatch(_event("e1"))
    late.assert_not_called()


def test_handler_unsubscribed_mid_dispatch_is_not_called():
    registry = SubscriptionRegistry()
    second = Mock()
    holder = {}

    def first(event):
        registry.remove(holder["second"])

    registry.add("*", first)
    holder["second"] = registry.add("*", second).id

    registry.dispatch(_event("e1"))
    second.assert_not_called()


def test_failing_handler_does_not_block_others():
    registry = SubscriptionRegistry()
    after = Mock()
    registry.add("*", Mock(side_effect=RuntimeError("boom")))
    registry.add("*", after)

    registry.dispatch(_event("e1"))
    after.assert_called_once()


def test_run_fallbacks_skips_subscriptions_without_callback():
    registry = SubscriptionRegistry()
    with_fallback = Mock()
    registry.add("*", Mock())
    registry.add("*", Mock(), with_fallback)
    registry.add("*", Mock(), Mock(side_effect=RuntimeError("boom")))

    registry.run_fallbacks()
    with_fallback.assert_called_once_with()


@pytest.mark.asyncio
async def test_async_handler_is_scheduled():
    registry = SubscriptionRegistry()
    seen = []

    async def handler(event):
        await asyncio.sleep(0)
        seen.append(event.event_id)

    registry.add("*", handler)
    registry.dispatch(_event("e1"))
    await registry.drain()

    assert seen == ["e1"]


def test_normalize_event_filter():
    assert normalize_event_filter("*") == frozenset({"*"})
    assert normalize_event_filter(["review:updated", "review:updated"]) == frozenset({"review:updated"})

    with pytest.raises(ValueError, match="Unknown event types"):
        normalize_event_filter(["chat:typing"])
    with pytest.raises(ValueError):
        normalize_event_filter([])


def test_seen_events_unbounded_by_default():
    seen = SeenEvents()
    for index in range(1000):
        seen.add(f"e{index}")
    assert len(seen) == 1000
    assert "e0" in seen


def test_seen_events_limit_evicts_oldest():
    seen = SeenEvents(limit=2)
    seen.add("a")
    seen.add("b")
    seen.add("c")
    assert "a" not in seen
    assert "b" in seen and "c" in seen
