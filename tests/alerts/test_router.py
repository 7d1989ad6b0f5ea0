"""Tests for the alert router."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from pulse_cli.alerts.router import AlertRouter
from pulse_cli.alerts.rules import AlertKind, AlertRule, DigestPolicy, ImmediatePolicy
from pulse_cli.events.bus import Event
from pulse_cli.exceptions import ConfigurationError

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, seconds: float) -> None:
        self.now = T0 + timedelta(seconds=seconds)


class ManualTimer:
    """WindowTimer that fires only when the test says so."""

    def __init__(self) -> None:
        self.scheduled = {}
        self.history = []

    def schedule(self, key, deadline, callback):
        self.scheduled[key] = (deadline, callback)
        self.history.append((key, deadline))

    def cancel(self, key):
        self.scheduled.pop(key, None)

    async def fire(self, key):
        _, callback = self.scheduled.pop(key)
        await callback()


class RecordingSink:
    """Collects submitted payloads."""

    def __init__(self) -> None:
        self.payloads = []

    def submit(self, payload):
        self.payloads.append(payload)


def disk_event(percent: float = 95.0) -> Event:
    return Event(
        "high-disk-usage",
        {"readings": [{"mount": "/", "percent_disk_used": percent, "max_usage": 90.0, "over_threshold": True}]},
        occurred_at=T0,
        source="check-disk-usage",
    )


def alarm_rule(cooldown: float = 0, name: str = "disk-alarm", mediums=("email",)) -> AlertRule:
    return AlertRule(name, "high-disk-usage", mediums, ImmediatePolicy(timedelta(seconds=cooldown)))


def digest_rule(window: float = 300, name: str = "disk-digest") -> AlertRule:
    return AlertRule(name, "high-disk-usage", ("email",), DigestPolicy(timedelta(seconds=window)))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timer():
    return ManualTimer()


@pytest.fixture
def sink():
    return RecordingSink()


class TestConstruction:
    """Tests for router construction and rule types."""

    def test_duplicate_rule_names(self, sink, timer):
        """Test two rules with the same name are rejected."""
        with pytest.raises(ConfigurationError):
            AlertRouter([alarm_rule(), alarm_rule()], sink, timer)

    def test_rule_needs_mediums(self):
        """Test a rule without mediums is rejected."""
        with pytest.raises(ConfigurationError):
            AlertRule("empty", "high-disk-usage", ())

    def test_negative_cooldown(self):
        """Test a negative cooldown is rejected."""
        with pytest.raises(ConfigurationError):
            ImmediatePolicy(timedelta(seconds=-1))

    def test_zero_digest_window(self):
        """Test a digest window must be positive."""
        with pytest.raises(ConfigurationError):
            DigestPolicy(timedelta(0))

    def test_rules_for_is_case_sensitive(self, sink, timer):
        """Test rule matching uses exact event names."""
        router = AlertRouter([alarm_rule()], sink, timer)

        assert len(router.rules_for("high-disk-usage")) == 1
        assert router.rules_for("High-Disk-Usage") == []

    def test_rule_matches_exact_name(self):
        """Test AlertRule.matches compares the event name exactly."""
        rule = alarm_rule()

        assert rule.matches(disk_event()) is True
        assert rule.matches(Event("High-Disk-Usage", {}, occurred_at=T0)) is False
        assert rule.matches(Event("disk-usage", {}, occurred_at=T0)) is False


class TestImmediateRules:
    """Tests for cooldown-throttled alarms."""

    @pytest.mark.asyncio
    async def test_cooldown_suppresses_until_elapsed(self, clock, timer, sink):
        """Test matches inside the cooldown are dropped and the boundary fires."""
        router = AlertRouter([alarm_rule(cooldown=60)], sink, timer, clock=clock)

        for seconds in (0, 59, 60, 121):
            clock.set(seconds)
            await router.on_event(disk_event())

        assert [p.created_at for p in sink.payloads] == [
            T0,
            T0 + timedelta(seconds=60),
            T0 + timedelta(seconds=121),
        ]
        state = router.throttle_state("disk-alarm")
        assert state.dispatch_count == 3
        assert state.suppressed_count == 1
        assert state.last_fired_at == T0 + timedelta(seconds=121)

    @pytest.mark.asyncio
    async def test_zero_cooldown_dispatches_every_match(self, clock, timer, sink):
        """Test every match fires without a cooldown."""
        router = AlertRouter([alarm_rule()], sink, timer, clock=clock)

        for _ in range(3):
            await router.on_event(disk_event())

        assert len(sink.payloads) == 3

    @pytest.mark.asyncio
    async def test_retriggered_subject(self, clock, timer, sink):
        """Test the first alarm and later alarms use different subject prefixes."""
        router = AlertRouter([alarm_rule()], sink, timer, clock=clock)

        await router.on_event(disk_event())
        await router.on_event(disk_event())

        assert sink.payloads[0].content.subject == "[PULSE] High Disk Usage"
        assert sink.payloads[1].content.subject == "[PULSE] Retriggered: High Disk Usage"

    @pytest.mark.asyncio
    async def test_payload_contents(self, clock, timer, sink):
        """Test an alarm payload carries the rule, event and mediums."""
        router = AlertRouter([alarm_rule(mediums=("email", "log"))], sink, timer, clock=clock)
        event = disk_event()

        await router.on_event(event)

        payload = sink.payloads[0]
        assert payload.rule_name == "disk-alarm"
        assert payload.event_name == "high-disk-usage"
        assert payload.alert_kind is AlertKind.ALARM
        assert payload.mediums == ("email", "log")
        assert payload.events == (event,)
        assert "95.00% disk usage" in payload.content.body
        assert router.dispatched_count == 1

    @pytest.mark.asyncio
    async def test_unmatched_events_are_ignored(self, clock, timer, sink):
        """Test events without a rule produce nothing."""
        router = AlertRouter([alarm_rule()], sink, timer, clock=clock)

        await router.on_event(Event("disk-usage"))

        assert sink.payloads == []

    @pytest.mark.asyncio
    async def test_rules_throttle_independently(self, clock, timer, sink):
        """Test two rules on the same event keep separate cooldowns."""
        rules = [alarm_rule(cooldown=3600, name="slow"), alarm_rule(cooldown=0, name="fast")]
        router = AlertRouter(rules, sink, timer, clock=clock)

        await router.on_event(disk_event())
        clock.set(10)
        await router.on_event(disk_event())

        assert [p.rule_name for p in sink.payloads] == ["slow", "fast", "fast"]

    @pytest.mark.asyncio
    async def test_concurrent_matches_fire_once(self, clock, timer, sink):
        """Test simultaneous matches inside one cooldown dispatch a single alarm."""
        router = AlertRouter([alarm_rule(cooldown=60)], sink, timer, clock=clock)

        await asyncio.gather(*(router.on_event(disk_event()) for _ in range(10)))

        assert len(sink.payloads) == 1
        assert router.throttle_state("disk-alarm").suppressed_count == 9

    @pytest.mark.asyncio
    async def test_replay_is_deterministic(self, timer):
        """Test the same event sequence gives the same decisions on a fresh router."""
        timeline = [0, 10, 30, 65, 70, 200]

        async def replay():
            clock, sink = FakeClock(), RecordingSink()
            router = AlertRouter([alarm_rule(cooldown=60)], sink, timer, clock=clock)
            for seconds in timeline:
                clock.set(seconds)
                await router.on_event(disk_event())
            return [(p.created_at, p.content.subject) for p in sink.payloads]

        first = await replay()
        second = await replay()

        assert first == second
        assert len(first) == 3


class TestDigestRules:
    """Tests for windowed digests."""

    @pytest.mark.asyncio
    async def test_window_collects_events(self, clock, timer, sink):
        """Test events inside one window are flushed together."""
        router = AlertRouter([digest_rule(window=300)], sink, timer, clock=clock)

        await router.on_event(disk_event(91))
        clock.set(150)
        await router.on_event(disk_event(92))

        assert sink.payloads == []
        assert timer.history == [("disk-digest", T0 + timedelta(seconds=300))]

        clock.set(300)
        await timer.fire("disk-digest")

        assert len(sink.payloads) == 1
        payload = sink.payloads[0]
        assert payload.alert_kind is AlertKind.DIGEST
        assert len(payload.events) == 2
        assert payload.content.subject == "[PULSE] Digest: High Disk Usage (2 events)"
        assert payload.content.body.index("91.00%") < payload.content.body.index("92.00%")
        assert router.digest_buffer("disk-digest").flush_count == 1

    @pytest.mark.asyncio
    async def test_new_window_after_flush(self, clock, timer, sink):
        """Test the first event after a flush opens a new window."""
        router = AlertRouter([digest_rule(window=300)], sink, timer, clock=clock)

        await router.on_event(disk_event())
        clock.set(300)
        await timer.fire("disk-digest")
        clock.set(305)
        await router.on_event(disk_event())

        assert timer.history[-1] == ("disk-digest", T0 + timedelta(seconds=605))
        assert router.digest_buffer("disk-digest").active is True
        assert len(router.digest_buffer("disk-digest").events) == 1

    @pytest.mark.asyncio
    async def test_empty_flush_dispatches_nothing(self, clock, timer, sink):
        """Test flushing an empty buffer is a no-op."""
        router = AlertRouter([digest_rule()], sink, timer, clock=clock)

        await router.flush("disk-digest")

        assert sink.payloads == []
        assert router.digest_buffer("disk-digest").flush_count == 0

    @pytest.mark.asyncio
    async def test_single_event_subject(self, clock, timer, sink):
        """Test the digest subject uses the singular for one event."""
        router = AlertRouter([digest_rule()], sink, timer, clock=clock)

        await router.on_event(disk_event())
        await timer.fire("disk-digest")

        assert sink.payloads[0].content.subject.endswith("(1 event)")

    @pytest.mark.asyncio
    async def test_rule_stats(self, clock, timer, sink):
        """Test per-rule counters cover alarms, suppressions and digests."""
        router = AlertRouter([alarm_rule(cooldown=60), digest_rule()], sink, timer, clock=clock)

        await router.on_event(disk_event())
        clock.set(30)
        await router.on_event(disk_event())
        await timer.fire("disk-digest")
        await router.on_event(disk_event())

        assert router.rule_stats() == [
            {"rule": "disk-alarm", "event": "high-disk-usage", "dispatched": 1, "suppressed": 2,
             "digests": 0, "buffered": 0},
            {"rule": "disk-digest", "event": "high-disk-usage", "dispatched": 0, "suppressed": 0,
             "digests": 1, "buffered": 1},
        ]


class TestClose:
    """Tests for router shutdown."""

    @pytest.mark.asyncio
    async def test_close_flushes_digests(self, clock, timer, sink):
        """Test pending digests are dispatched on close."""
        router = AlertRouter([digest_rule()], sink, timer, clock=clock)
        await router.on_event(disk_event())

        await router.close(flush=True)

        assert len(sink.payloads) == 1
        assert timer.scheduled == {}

    @pytest.mark.asyncio
    async def test_close_without_flush_discards(self, clock, timer, sink):
        """Test pending digests can be dropped on close."""
        router = AlertRouter([digest_rule()], sink, timer, clock=clock)
        await router.on_event(disk_event())

        await router.close(flush=False)

        assert sink.payloads == []
        assert router.digest_buffer("disk-digest").events == []

    @pytest.mark.asyncio
    async def test_events_after_close_are_ignored(self, clock, timer, sink):
        """Test a closed router does not dispatch."""
        router = AlertRouter([alarm_rule()], sink, timer, clock=clock)
        await router.close()

        await router.on_event(disk_event())

        assert sink.payloads == []
