"""Alert rule and payload types.

An AlertRule matches events by name and routes them to one or more
mediums under one of two policies:

- ``ImmediatePolicy``: every match is dispatched as an alarm unless the
  rule fired less than ``cooldown`` ago.
- ``DigestPolicy``: matches are buffered and flushed as a single digest
  once per ``window``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple, Union

from pulse_cli.events.bus import Event, utcnow
from pulse_cli.exceptions import ConfigurationError


class AlertKind(str, Enum):
    """Kind of dispatched alert."""

    ALARM = "alarm"
    DIGEST = "digest"


@dataclass(frozen=True)
class ImmediatePolicy:
    """Dispatch on match, at most once per cooldown."""

    cooldown: timedelta = timedelta(0)

    def __post_init__(self) -> None:
        if self.cooldown < timedelta(0):
            raise ConfigurationError("Alert cooldown must not be negative", {"cooldown": self.cooldown})

    def __str__(self) -> str:
        return f"immediate (cooldown {self.cooldown})"


@dataclass(frozen=True)
class DigestPolicy:
    """Buffer matches and dispatch them together once per window."""

    window: timedelta

    def __post_init__(self) -> None:
        if self.window <= timedelta(0):
            raise ConfigurationError("Digest window must be positive", {"window": self.window})

    def __str__(self) -> str:
        return f"digest (window {self.window})"


AlertPolicy = Union[ImmediatePolicy, DigestPolicy]


@dataclass(frozen=True)
class AlertRule:
    """Routes events with a given name to mediums.

    Attributes:
        name: Unique rule name
        event_name: Event name to match (exact, case-sensitive)
        mediums: Medium ids to broadcast on
        policy: Throttling or digest policy
    """

    name: str
    event_name: str
    mediums: Tuple[str, ...]
    policy: AlertPolicy = field(default_factory=ImmediatePolicy)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mediums", tuple(self.mediums))
        if not self.mediums:
            raise ConfigurationError("Alert rule has no mediums", {"rule": self.name})

    def matches(self, event: Event) -> bool:
        return event.name == self.event_name

    @property
    def is_digest(self) -> bool:
        return isinstance(self.policy, DigestPolicy)


@dataclass
class ThrottleState:
    """Per-rule dispatch bookkeeping for immediate rules.

    Attributes:
        last_fired_at: Instant of the last dispatch, None if never fired
        dispatch_count: Number of alarms dispatched
        suppressed_count: Number of matches dropped by the cooldown
    """

    last_fired_at: Optional[datetime] = None
    dispatch_count: int = 0
    suppressed_count: int = 0

    def cooled_down(self, now: datetime, cooldown: timedelta) -> bool:
        return self.last_fired_at is None or now - self.last_fired_at >= cooldown


@dataclass
class DigestBuffer:
    """Events buffered for a digest rule's current window."""

    events: List[Event] = field(default_factory=list)
    window_deadline: Optional[datetime] = None
    flush_count: int = 0

    @property
    def active(self) -> bool:
        return self.window_deadline is not None

    def take(self) -> List[Event]:
        """Remove and return the buffered events, closing the window."""
        events, self.events = self.events, []
        self.window_deadline = None
        return events


@dataclass(frozen=True)
class RenderedContent:
    """Medium-ready alert content. ``body`` is HTML."""

    subject: str
    body: str


@dataclass(frozen=True)
class AlertPayload:
    """A finalized alert handed to the broadcast dispatcher.

    Attributes:
        rule_name: Rule that produced the alert
        event_name: Event name the rule matched
        alert_kind: Alarm or digest
        mediums: Medium ids to broadcast on
        content: Rendered subject and body
        events: Events the alert covers, in arrival order
        created_at: Dispatch instant
    """

    rule_name: str
    event_name: str
    alert_kind: AlertKind
    mediums: Tuple[str, ...]
    content: RenderedContent
    events: Tuple[Event, ...]
    created_at: datetime = field(default_factory=utcnow)
