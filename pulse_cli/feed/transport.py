"""Live feed transports.

A transport knows which subscribers are connected and how to push a
serialized message to them. ``QueueTransport`` keeps one bounded asyncio
queue per subscriber; a websocket or SSE endpoint drains it through
``stream()``.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, Iterable, Optional, Protocol, Set, runtime_checkable
from uuid import uuid4

logger = logging.getLogger(__name__)


@runtime_checkable
class FeedTransport(Protocol):
    """Delivery channel to live feed subscribers."""

    def subscribers(self) -> Set[str]: ...

    async def publish(self, subscriber_ids: Iterable[str], message: str) -> Set[str]:
        """Push a message; returns the ids it could not be delivered to."""
        ...


class QueueTransport:
    """In-process transport with one queue per connected subscriber.

    Example:
        transport = QueueTransport()
        subscriber_id = transport.connect()

        async for message in transport.stream(subscriber_id):
            await websocket.send_text(message)
    """

    def __init__(self, max_queue: int = 100) -> None:
        self._max_queue = max_queue
        self._queues: Dict[str, asyncio.Queue] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def subscribers(self) -> Set[str]:
        return set(self._queues)

    def connect(self, subscriber_id: Optional[str] = None) -> str:
        """Register a subscriber. Only messages published afterwards reach it."""
        subscriber_id = subscriber_id or uuid4().hex
        self._queues[subscriber_id] = asyncio.Queue(maxsize=self._max_queue)
        logger.info(f"Feed subscriber {subscriber_id} connected ({len(self._queues)} total)")
        return subscriber_id

    def disconnect(self, subscriber_id: str) -> None:
        if self._queues.pop(subscriber_id, None) is not None:
            logger.info(f"Feed subscriber {subscriber_id} disconnected ({len(self._queues)} remaining)")

    async def publish(self, subscriber_ids: Iterable[str], message: str) -> Set[str]:
        failed: Set[str] = set()
        for subscriber_id in subscriber_ids:
            queue = self._queues.get(subscriber_id)
            if queue is None:
                failed.add(subscriber_id)
                continue
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                failed.add(subscriber_id)
        return failed

    async def stream(self, subscriber_id: str) -> AsyncIterator[str]:
        """Yield messages for a subscriber until it disconnects."""
        queue = self._queues.get(subscriber_id)
        if queue is None:
            raise KeyError(f"Unknown feed subscriber: {subscriber_id}")
        try:
            while subscriber_id in self._queues:
                yield await queue.get()
        finally:
            self.disconnect(subscriber_id)
