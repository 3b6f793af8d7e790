"""Pydantic schemas for realtime events.

Learn: Every event on the push stream is a JSON object:

    {"eventId": "...", "type": "appointment:changed",
     "payload": {...}, "target": {...}, "createdAt": 1700000000000}

The `type` field is the discriminator of a tagged union. Each event
class pins its `type` to a literal and carries its own payload model,
so parsing an event also validates its payload. Unknown types fail
validation like any other malformed message.

Wire names are camelCase (the browser contract); Python attributes stay
snake_case via the alias generator. Always dump with by_alias=True.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─── Target ──────────────────────────────────────────────


class RealtimeTarget(CamelModel):
    """Recipient filter. An empty target reaches nobody unless broadcast."""
    users: list[str] = Field(default_factory=list)
    roles: list[str] = Field(default_factory=list)
    broadcast: bool = False


# ─── Payloads ────────────────────────────────────────────


class NotificationItem(CamelModel):
    id: str
    type: str
    title: str
    message: str
    read: bool = False
    related_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: str


class NotificationNewPayload(CamelModel):
    notification: NotificationItem
    unread_count: Optional[int] = None


class NotificationReadPayload(CamelModel):
    notification_id: Optional[str] = None
    unread_count: int


class NotificationRefreshPayload(CamelModel):
    reason: Optional[str] = None


class AppointmentChangedPayload(CamelModel):
    appointment_id: str
    status: str
    date: Optional[str] = None
    barber_id: Optional[str] = None
    user_id: Optional[str] = None


class ReviewUpdatedPayload(CamelModel):
    review_id: str
    rating: Optional[float] = None
    barber_id: Optional[str] = None
    user_id: Optional[str] = None
    service_history_id: Optional[str] = None


class AnalyticsUpdatedPayload(CamelModel):
    scope: Literal["revenue", "appointments", "reviews"]
    reason: Optional[str] = None


class LiveStatusPayload(CamelModel):
    status: Literal["connected", "reconnecting", "fallback"]


class LiveHeartbeatPayload(CamelModel):
    ts: int


# ─── Events ──────────────────────────────────────────────


class _EventBase(CamelModel):
    event_id: str = Field(..., min_length=1, description="Unique per logical event")
    target: RealtimeTarget = Field(default_factory=RealtimeTarget)
    created_at: Optional[int] = Field(None, description="Epoch milliseconds")


class NotificationNewEvent(_EventBase):
    type: Literal["notification:new"]
    payload: NotificationNewPayload


class NotificationReadEvent(_EventBase):
    type: Literal["notification:read"]
    payload: NotificationReadPayload


class NotificationRefreshEvent(_EventBase):
    type: Literal["notification:refresh"]
    payload: NotificationRefreshPayload = Field(default_factory=NotificationRefreshPayload)


class AppointmentChangedEvent(_EventBase):
    type: Literal["appointment:changed"]
    payload: AppointmentChangedPayload


class ReviewUpdatedEvent(_EventBase):
    type: Literal["review:updated"]
    payload: ReviewUpdatedPayload


class AnalyticsUpdatedEvent(_EventBase):
    type: Literal["analytics:updated"]
    payload: AnalyticsUpdatedPayload


class LiveStatusEvent(_EventBase):
    type: Literal["live:status"]
    payload: LiveStatusPayload


class LiveHeartbeatEvent(_EventBase):
    type: Literal["live:heartbeat"]
    payload: LiveHeartbeatPayload


RealtimeEvent = Annotated[
    Union[
        NotificationNewEvent,
        NotificationReadEvent,
        NotificationRefreshEvent,
        AppointmentChangedEvent,
        ReviewUpdatedEvent,
        AnalyticsUpdatedEvent,
        LiveStatusEvent,
        LiveHeartbeatEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[RealtimeEvent] = TypeAdapter(RealtimeEvent)


def parse_event(raw: Union[str, bytes]) -> RealtimeEvent:
    """Parse one JSON message into a typed event.

    Raises pydantic.ValidationError for bad JSON, unknown types or
    payloads that don't match their type.
    """
    return _event_adapter.validate_json(raw)


def parse_event_dict(data: Any) -> RealtimeEvent:
    """Validate an already-decoded event (e.g. a relayed message)."""
    return _event_adapter.validate_python(data)


def event_to_wire(event: RealtimeEvent) -> dict:
    """Serialize an event to its camelCase wire dict."""
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def event_to_json(event: RealtimeEvent) -> str:
    return event.model_dump_json(by_alias=True, exclude_none=True)
