"""Base class for operations.

Operations are the units of work the scheduler runs. Each execution
observes something (disk usage, a news feed, a command's output) and
produces at most one ``Event``.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from pulse_cli.events.bus import Event, utcnow


class Operation(ABC):
    """Abstract base class for operations.

    Operations must implement ``execute()``, returning the produced event or
    raising ``OperationError``. They are stateless from the scheduler's point
    of view and may be executed concurrently.

    Example:
        class UptimeOperation(Operation):
            name = "check-uptime"

            async def execute(self) -> Event:
                return self.event("uptime", {"seconds": read_uptime()})
    """

    #: Registry name of the operation
    name: str = ""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        self._config = config or {}

    @abstractmethod
    async def execute(self) -> Event:
        """Run the operation once.

        Returns:
            The event describing what was observed

        Raises:
            OperationError: If the operation could not complete
        """
        ...

    def event(self, event_name: str, payload: Mapping[str, Any]) -> Event:
        """Build an event attributed to this operation."""
        return Event(name=event_name, payload=payload, occurred_at=utcnow(), source=self.name)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"
