"""Live feed of events to connected clients."""

from pulse_cli.feed.live import LiveFeedPublisher
from pulse_cli.feed.transport import FeedTransport, QueueTransport

__all__ = [
    "LiveFeedPublisher",
    "FeedTransport",
    "QueueTransport",
]
