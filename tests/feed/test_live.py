"""Tests for the live feed transport and publisher."""

import asyncio
import json

import pytest

from pulse_cli.events.bus import Event
from pulse_cli.feed.live import LiveFeedPublisher
from pulse_cli.feed.transport import FeedTransport, QueueTransport


def disk_event() -> Event:
    return Event(
        "disk-usage",
        {
            "readings": [
                {"mount": "/", "percent_disk_used": 40.0},
                {"mount": "/var", "percent_disk_used": 70.0},
            ]
        },
        source="check-disk-usage",
    )


class TestQueueTransport:
    """Tests for QueueTransport."""

    def test_is_transport(self):
        """Test QueueTransport satisfies the FeedTransport protocol."""
        assert isinstance(QueueTransport(), FeedTransport)

    def test_connect_and_disconnect(self):
        """Test subscribers are tracked by id."""
        transport = QueueTransport()

        subscriber_id = transport.connect()
        named = transport.connect("dashboard")
        assert transport.subscribers() == {subscriber_id, "dashboard"}

        transport.disconnect(named)
        transport.disconnect("unknown")
        assert transport.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_publish_and_stream(self):
        """Test published messages are streamed in order."""
        transport = QueueTransport()
        subscriber_id = transport.connect()

        failed = await transport.publish([subscriber_id], "one")
        await transport.publish([subscriber_id], "two")
        stream = transport.stream(subscriber_id)

        assert failed == set()
        assert await stream.__anext__() == "one"
        assert await stream.__anext__() == "two"
        await stream.aclose()
        assert transport.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_stream_unknown_subscriber(self):
        """Test streaming an unknown subscriber raises KeyError."""
        transport = QueueTransport()

        with pytest.raises(KeyError):
            await transport.stream("ghost").__anext__()

    @pytest.mark.asyncio
    async def test_full_queue_fails(self):
        """Test a subscriber with a full queue is reported as failed."""
        transport = QueueTransport(max_queue=1)
        subscriber_id = transport.connect()

        await transport.publish([subscriber_id], "one")
        failed = await transport.publish([subscriber_id, "ghost"], "two")

        assert failed == {subscriber_id, "ghost"}


class TestLiveFeedPublisher:
    """Tests for LiveFeedPublisher."""

    def test_serialize_splits_readings(self):
        """Test each mount reading becomes its own tagged message."""
        publisher = LiveFeedPublisher(QueueTransport())
        event = disk_event()

        messages = [json.loads(m) for m in publisher.serialize(event)]

        assert [m["mount"] for m in messages] == ["/", "/var"]
        assert messages[1]["data"]["percent_disk_used"] == 70.0
        assert all(m["category"] == "disk-usage" for m in messages)
        assert all(m["event_id"] == str(event.event_id) for m in messages)

    def test_serialize_plain_payload(self):
        """Test events without readings become a single message."""
        publisher = LiveFeedPublisher(QueueTransport())

        messages = publisher.serialize(Event("newscast", {"sections": []}))

        assert len(messages) == 1
        assert json.loads(messages[0])["data"] == {"sections": []}

    @pytest.mark.asyncio
    async def test_no_subscribers(self):
        """Test nothing is published without subscribers."""
        publisher = LiveFeedPublisher(QueueTransport())

        await publisher.on_event(disk_event())

        assert publisher.published_count == 0

    @pytest.mark.asyncio
    async def test_delivers_to_subscribers(self):
        """Test connected subscribers receive every message."""
        transport = QueueTransport()
        subscriber_id = transport.connect()
        publisher = LiveFeedPublisher(transport)

        await publisher.on_event(disk_event())

        stream = transport.stream(subscriber_id)
        first = json.loads(await asyncio.wait_for(stream.__anext__(), timeout=1))
        await stream.aclose()
        assert first["mount"] == "/"
        assert publisher.published_count == 2
        assert publisher.failure_count == 0

    @pytest.mark.asyncio
    async def test_transport_failure_counted(self):
        """Test a raising transport is counted and does not propagate."""

        class BrokenTransport:
            def subscribers(self):
                return {"a", "b"}

            async def publish(self, subscriber_ids, message):
                raise ConnectionError("gone")

        publisher = LiveFeedPublisher(BrokenTransport())

        await publisher.on_event(Event("newscast", {}))

        assert publisher.failure_count == 2
