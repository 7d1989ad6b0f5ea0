"""Alert rules, throttling and digests.

Events matching an alert rule are either dispatched immediately (subject
to a cooldown) or buffered into a digest that is dispatched once per
window.
"""

from pulse_cli.alerts.router import AlertRouter
from pulse_cli.alerts.rules import (
    AlertKind,
    AlertPayload,
    AlertRule,
    DigestBuffer,
    DigestPolicy,
    ImmediatePolicy,
    RenderedContent,
    ThrottleState,
)
from pulse_cli.alerts.timer import SchedulerWindowTimer, WindowTimer

__all__ = [
    "AlertRouter",
    "AlertKind",
    "AlertPayload",
    "AlertRule",
    "DigestBuffer",
    "DigestPolicy",
    "ImmediatePolicy",
    "RenderedContent",
    "ThrottleState",
    "SchedulerWindowTimer",
    "WindowTimer",
]
