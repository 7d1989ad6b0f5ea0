"""Live feed publisher.

Forwards every published event to the clients currently connected to the
feed transport. Events carrying per-mount readings are split so each
message is tagged with its originating mount.
"""

import json
import logging
from typing import Any, Dict, List

from pulse_cli.events.bus import Event
from pulse_cli.feed.transport import FeedTransport

logger = logging.getLogger(__name__)


class LiveFeedPublisher:
    """Publishes serialized events to live feed subscribers."""

    def __init__(self, transport: FeedTransport) -> None:
        self._transport = transport
        self._published = 0
        self._failures = 0

    @property
    def published_count(self) -> int:
        return self._published

    @property
    def failure_count(self) -> int:
        return self._failures

    def serialize(self, event: Event) -> List[str]:
        """Serialize an event into one tagged JSON message per source context."""
        base: Dict[str, Any] = {
            "category": event.name,
            "source": event.source,
            "event_id": str(event.event_id),
            "occurred_at": event.occurred_at.isoformat(),
        }

        readings = event.payload.get("readings")
        if isinstance(readings, list) and readings:
            return [
                json.dumps({**base, "mount": reading.get("mount"), "data": reading}, default=str)
                for reading in readings
            ]

        return [json.dumps({**base, "data": dict(event.payload)}, default=str)]

    async def on_event(self, event: Event) -> None:
        subscribers = self._transport.subscribers()
        if not subscribers:
            return

        for message in self.serialize(event):
            try:
                failed = await self._transport.publish(subscribers, message)
            except Exception as e:
                self._failures += len(subscribers)
                logger.warning(f"Live feed transport failed for {event.name}: {e}")
                continue

            self._published += 1
            if failed:
                self._failures += len(failed)
                logger.warning(f"Live feed could not reach {len(failed)} subscriber(s) for {event.name}")
