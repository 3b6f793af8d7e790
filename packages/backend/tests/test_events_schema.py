"""Realtime event schema tests — the tagged union and its wire format."""

import json

import pytest
from pydantic import ValidationError

from barbershop.schemas.realtime import (
    AppointmentChangedEvent,
    NotificationNewEvent,
    NotificationRefreshEvent,
    event_to_wire,
    parse_event,
    parse_event_dict,
)


def test_parse_notification_new():
    raw = json.dumps({
        "eventId": "n-1",
        "type": "notification:new",
        "payload": {
            "notification": {
                "id": "notif-1",
                "type": "APPOINTMENT_CONFIRMED",
                "title": "Booked",
                "message": "See you Friday",
                "read": False,
                "relatedId": "appt-9",
                "createdAt": "2024-05-01T10:00:00Z",
            },
            "unreadCount": 3,
        },
        "target": {"users": ["user-1"]},
        "createdAt": 1714557600000,
    })

    event = parse_event(raw)

    assert isinstance(event, NotificationNewEvent)
    assert event.payload.unread_count == 3
    assert event.payload.notification.related_id == "appt-9"
    assert event.target.users == ["user-1"]
    assert event.created_at == 1714557600000


def test_wire_format_uses_camel_case():
    event = parse_event_dict({
        "eventId": "a-1",
        "type": "appointment:changed",
        "payload": {"appointmentId": "appt-1", "status": "CANCELLED", "barberId": "b-1"},
    })

    assert isinstance(event, AppointmentChangedEvent)
    wire = event_to_wire(event)
    assert wire["eventId"] == "a-1"
    assert wire["payload"] == {"appointmentId": "appt-1", "status": "CANCELLED", "barberId": "b-1"}
    assert wire["target"] == {"users": [], "roles": [], "broadcast": False}


def test_target_is_optional_and_refresh_payload_defaults():
    event = parse_event('{"eventId": "r-1", "type": "notification:refresh"}')
    assert isinstance(event, NotificationRefreshEvent)
    assert event.payload.reason is None
    assert not event.target.broadcast


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"type": "notification:refresh", "payload": {}}',
        '{"eventId": "", "type": "notification:refresh"}',
        '{"eventId": "x", "type": "chat:typing", "payload": {}}',
        '{"eventId": "x", "type": "analytics:updated", "payload": {"scope": "weather"}}',
        '{"eventId": "x", "type": "notification:read", "payload": {}}',
    ],
    ids=["bad-json", "no-id", "empty-id", "unknown-type", "bad-enum", "missing-field"],
)
def test_malformed_events_fail_validation(raw):
    with pytest.raises(ValidationError):
        parse_event(raw)
