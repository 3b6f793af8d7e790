"""Cross-tab relay — share received events with sibling tabs.

Learn: Every event a tab dispatches is also posted to the shared
channel, tagged with the tab's random id:

    {"origin": "<tab id>", "event": {...wire event...}}

Sibling tabs dispatch what they hear as if it came over their own
connection. Messages carrying our own tab id are echoes and ignored.
Relayed events still go through the registry's dedup, so an event that
arrives both directly and via relay is handled once.

The relay is an optimization: with no channel, each tab simply keeps
its own connection (or polls).
"""

from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from barbershop.client.channels import BroadcastChannel
from barbershop.schemas.realtime import RealtimeEvent, event_to_wire, parse_event_dict

logger = structlog.get_logger()


class CrossTabRelay:
    def __init__(
        self,
        channel: BroadcastChannel,
        tab_id: str,
        on_event: Callable[[RealtimeEvent], None],
    ):
        self.channel = channel
        self.tab_id = tab_id
        self.on_event = on_event
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        await self.channel.open(self._on_message)
        self._started = True

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await self.channel.close()

    def broadcast(self, event: RealtimeEvent) -> None:
        if not self._started:
            return
        self.channel.post_message({"origin": self.tab_id, "event": event_to_wire(event)})

    def _on_message(self, message: dict) -> None:
        if not isinstance(message, dict):
            return
        origin: Optional[str] = message.get("origin")
        raw = message.get("event")
        if not raw or origin == self.tab_id:
            return

        try:
            event = parse_event_dict(raw)
        except ValidationError as e:
            logger.warning("relay.malformed_event", origin=origin, error=str(e))
            return
        self.on_event(event)
