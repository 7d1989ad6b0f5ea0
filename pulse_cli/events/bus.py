"""Event type and in-process EventBus.

Operations produce ``Event`` values; the bus fans every published event out
to each attached subscriber. Subscribers receive a lazy, unbounded sequence
of the events published after they attached, in publication order.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, AsyncIterator, Callable, Coroutine, Dict, List, Mapping, Optional, Set
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """An immutable record of something an operation observed.

    Attributes:
        name: Event name alert rules are matched against (e.g. ``high-disk-usage``)
        payload: Event-specific data (read-only)
        occurred_at: When the observation was made
        source: Name of the operation that produced the event
        event_id: Unique identifier for this event
    """

    name: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)
    source: str = ""
    event_id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def to_dict(self) -> Dict[str, Any]:
        """Convert the event to a JSON-serializable dictionary."""
        return {
            "event_id": str(self.event_id),
            "name": self.name,
            "source": self.source,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": dict(self.payload),
        }


# Type alias for event handlers
EventHandler = Callable[[Event], Coroutine[Any, Any, None]]

_CLOSED = object()


class Subscription:
    """A subscriber's view of the bus.

    Iterate with ``async for``; iteration ends once ``close()`` is called
    and every event queued before it has been consumed.
    """

    def __init__(self, bus: "EventBus", name: Optional[str] = None) -> None:
        self._bus = bus
        self._name = name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def name(self) -> Optional[str]:
        """Event name filter, or None for every event."""
        return self._name

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of events queued but not yet consumed."""
        return self._queue.qsize()

    def accepts(self, event: Event) -> bool:
        return self._name is None or self._name == event.name

    def _deliver(self, event: Event) -> None:
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Detach from the bus and end the sequence."""
        if self._closed:
            return
        self._closed = True
        self._bus._detach(self)
        self._queue.put_nowait(_CLOSED)

    async def join(self) -> None:
        """Wait until every queued event has been consumed."""
        await self._queue.join()

    async def __aiter__(self) -> AsyncIterator[Event]:
        while True:
            item = await self._queue.get()
            try:
                if item is _CLOSED:
                    return
                yield item
            finally:
                self._queue.task_done()


class EventBus:
    """In-process async event bus.

    Example:
        bus = EventBus()
        subscription = bus.subscribe()

        bus.publish(Event("disk-usage", {"mount": "/"}))

        async for event in subscription:
            print(event.name)
    """

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []
        self._pumps: Set[asyncio.Task] = set()
        self._published = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @property
    def published_count(self) -> int:
        return self._published

    def subscribe(self, name: Optional[str] = None) -> Subscription:
        """Attach a new subscriber.

        Args:
            name: Only receive events with this name (default: all events)

        Returns:
            Subscription receiving events published from now on
        """
        subscription = Subscription(self, name)
        self._subscriptions.append(subscription)
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, event: Event) -> None:
        """Publish an event to every attached subscriber.

        Never blocks: subscriber queues are unbounded.
        """
        self._published += 1
        for subscription in list(self._subscriptions):
            if subscription.accepts(event):
                subscription._deliver(event)

    def attach(
        self,
        handler: EventHandler,
        name: Optional[str] = None,
        label: str = "",
    ) -> Subscription:
        """Subscribe a handler, pumping events into it from a background task.

        Handler exceptions are logged and do not stop the pump.

        Args:
            handler: Async function called once per event
            name: Only receive events with this name
            label: Name used in log messages

        Returns:
            The underlying subscription (close it to stop the pump)
        """
        subscription = self.subscribe(name)
        label = label or getattr(handler, "__qualname__", repr(handler))
        task = asyncio.create_task(self._pump(subscription, handler, label), name=f"pulse-bus:{label}")
        self._pumps.add(task)
        task.add_done_callback(self._pumps.discard)
        return subscription

    async def _pump(self, subscription: Subscription, handler: EventHandler, label: str) -> None:
        async for event in subscription:
            try:
                await handler(event)
            except Exception as e:
                logger.error(f"Event handler {label} failed for {event.name}: {e}", exc_info=True)

    async def join(self) -> None:
        """Wait until every subscriber has consumed everything published so far."""
        for subscription in list(self._subscriptions):
            await subscription.join()

    async def close(self) -> None:
        """Close every subscription and wait for the handler pumps to finish."""
        for subscription in list(self._subscriptions):
            subscription.close()
        if self._pumps:
            await asyncio.gather(*self._pumps, return_exceptions=True)
