"""Alert routing with cooldown throttling and windowed digests.

The AlertRouter is fed every published event. Each rule whose event name
matches is applied under that rule's own lock, so decisions for a single
rule are totally ordered while unrelated rules proceed in parallel.

Finalized payloads are handed to a sink (the broadcast dispatcher) with a
non-blocking ``submit``; the router never waits for delivery, and a
failed delivery does not roll back throttle or digest state.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Protocol

from pulse_cli.alerts.render import render_alarm, render_digest
from pulse_cli.alerts.rules import (
    AlertKind,
    AlertPayload,
    AlertRule,
    DigestBuffer,
    DigestPolicy,
    ImmediatePolicy,
    ThrottleState,
)
from pulse_cli.alerts.timer import WindowTimer
from pulse_cli.events.bus import Event, utcnow
from pulse_cli.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class PayloadSink(Protocol):
    """Accepts finalized alert payloads without blocking."""

    def submit(self, payload: AlertPayload) -> None: ...


class AlertRouter:
    """Applies alert rules to events.

    Example:
        router = AlertRouter(rules, dispatcher, SchedulerWindowTimer(scheduler))
        bus.attach(router.on_event, label="alert-router")
        ...
        await router.close()
    """

    def __init__(
        self,
        rules: Iterable[AlertRule],
        sink: PayloadSink,
        timer: WindowTimer,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the router.

        Args:
            rules: Alert rules; names must be unique
            sink: Receiver of finalized payloads
            timer: Timer used for digest windows
            clock: Source of the current time

        Raises:
            ConfigurationError: If two rules share a name
        """
        self._rules: Dict[str, AlertRule] = {}
        for rule in rules:
            if rule.name in self._rules:
                raise ConfigurationError("Duplicate alert rule name", {"rule": rule.name})
            self._rules[rule.name] = rule

        self._sink = sink
        self._timer = timer
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {name: asyncio.Lock() for name in self._rules}
        self._throttles: Dict[str, ThrottleState] = {name: ThrottleState() for name in self._rules}
        self._digests: Dict[str, DigestBuffer] = {name: DigestBuffer() for name in self._rules}
        self._dispatched = 0
        self._closed = False

    @property
    def rules(self) -> List[AlertRule]:
        return list(self._rules.values())

    @property
    def dispatched_count(self) -> int:
        """Number of payloads handed to the sink."""
        return self._dispatched

    def throttle_state(self, rule_name: str) -> ThrottleState:
        return self._throttles[rule_name]

    def digest_buffer(self, rule_name: str) -> DigestBuffer:
        return self._digests[rule_name]

    def rule_stats(self) -> List[Dict[str, Any]]:
        """Per-rule counters for status reporting."""
        return [
            {
                "rule": name,
                "event": rule.event_name,
                "dispatched": self._throttles[name].dispatch_count,
                "suppressed": self._throttles[name].suppressed_count,
                "digests": self._digests[name].flush_count,
                "buffered": len(self._digests[name].events),
            }
            for name, rule in self._rules.items()
        ]

    def rules_for(self, event_name: str) -> List[AlertRule]:
        """Rules matching an event name (exact, case-sensitive)."""
        return [rule for rule in self._rules.values() if rule.event_name == event_name]

    async def on_event(self, event: Event) -> None:
        """Apply every matching rule to an event."""
        if self._closed:
            logger.debug(f"Router closed, ignoring {event.name}")
            return

        rules = [rule for rule in self._rules.values() if rule.matches(event)]
        if not rules:
            return

        results = await asyncio.gather(
            *(self._apply(rule, event) for rule in rules),
            return_exceptions=True,
        )
        for rule, result in zip(rules, results):
            if isinstance(result, Exception):
                logger.error(f"Alert rule {rule.name} failed on {event.name}: {result}", exc_info=result)

    async def _apply(self, rule: AlertRule, event: Event) -> None:
        async with self._locks[rule.name]:
            now = self._clock()
            if isinstance(rule.policy, ImmediatePolicy):
                self._apply_immediate(rule, rule.policy, event, now)
            elif isinstance(rule.policy, DigestPolicy):
                self._apply_digest(rule, rule.policy, event, now)

    def _apply_immediate(self, rule: AlertRule, policy: ImmediatePolicy, event: Event, now: datetime) -> None:
        state = self._throttles[rule.name]
        if not state.cooled_down(now, policy.cooldown):
            state.suppressed_count += 1
            logger.debug(f"Rule {rule.name} suppressed {event.name}: fired at {state.last_fired_at.isoformat()}")
            return

        content = render_alarm(event, retriggered=state.dispatch_count > 0)
        state.last_fired_at = now
        state.dispatch_count += 1
        self._emit(
            AlertPayload(
                rule_name=rule.name,
                event_name=event.name,
                alert_kind=AlertKind.ALARM,
                mediums=rule.mediums,
                content=content,
                events=(event,),
                created_at=now,
            )
        )

    def _apply_digest(self, rule: AlertRule, policy: DigestPolicy, event: Event, now: datetime) -> None:
        buffer = self._digests[rule.name]
        buffer.events.append(event)
        if buffer.active:
            return

        buffer.window_deadline = now + policy.window
        self._timer.schedule(rule.name, buffer.window_deadline, lambda: self.flush(rule.name))
        logger.debug(f"Rule {rule.name} opened a digest window until {buffer.window_deadline.isoformat()}")

    async def flush(self, rule_name: str) -> None:
        """Flush a digest rule's buffer, dispatching it if non-empty.

        Called by the window timer on expiry and by ``close()``.
        """
        rule = self._rules[rule_name]
        async with self._locks[rule_name]:
            buffer = self._digests[rule_name]
            events = buffer.take()
            if not events:
                return

            buffer.flush_count += 1
            self._emit(
                AlertPayload(
                    rule_name=rule.name,
                    event_name=rule.event_name,
                    alert_kind=AlertKind.DIGEST,
                    mediums=rule.mediums,
                    content=render_digest(rule.event_name, events),
                    events=tuple(events),
                    created_at=self._clock(),
                )
            )

    def _emit(self, payload: AlertPayload) -> None:
        self._dispatched += 1
        logger.info(
            f"Dispatching {payload.alert_kind.value} for rule {payload.rule_name} "
            f"to {', '.join(payload.mediums)}"
        )
        self._sink.submit(payload)

    async def close(self, flush: bool = True) -> None:
        """Cancel pending window timers.

        Args:
            flush: Dispatch buffered digests instead of discarding them
        """
        self._closed = True
        for rule in self._rules.values():
            if not rule.is_digest:
                continue
            self._timer.cancel(rule.name)
            if flush:
                await self.flush(rule.name)
            else:
                dropped = self._digests[rule.name].take()
                if dropped:
                    logger.warning(f"Discarded {len(dropped)} buffered event(s) for rule {rule.name}")
