"""Events and the in-process event bus."""

from pulse_cli.events.bus import Event, EventBus, EventHandler, Subscription

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "Subscription",
]
