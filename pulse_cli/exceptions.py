"""Exceptions raised by the Pulse engine and its collaborators.

Startup errors (bad cron expressions, dangling operation or medium
references) prevent the daemon from running. Runtime errors raised by a
single operation or a single medium are contained by the component that
invoked it and only ever surface in the logs.
"""

from typing import Any, Dict, Mapping, Optional


class PulseError(Exception):
    """Base exception for Pulse.

    Attributes:
        message: Error message
        details: Additional context (offending schedule, rule, medium...)
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(PulseError):
    """The configuration is structurally invalid."""


class InvalidCronExpr(ConfigurationError):
    """A cron expression could not be parsed or never fires."""

    def __init__(self, expression: str, reason: str, schedule: Optional[str] = None) -> None:
        details: Dict[str, Any] = {"expression": expression}
        if schedule:
            details["schedule"] = schedule
        super().__init__(f"Invalid cron expression '{expression}': {reason}", details)
        self.expression = expression
        self.reason = reason


class UnknownOperation(ConfigurationError):
    """A schedule references an operation that is not registered."""

    def __init__(self, operation_name: str, schedule: Optional[str] = None) -> None:
        details: Dict[str, Any] = {"operation": operation_name}
        if schedule:
            details["schedule"] = schedule
        super().__init__(f"Unknown operation: {operation_name}", details)
        self.operation_name = operation_name


class UnknownMedium(ConfigurationError):
    """An alert rule references a medium with no configured adapter."""

    def __init__(self, medium_id: str, rule: Optional[str] = None) -> None:
        details: Dict[str, Any] = {"medium": medium_id}
        if rule:
            details["rule"] = rule
        super().__init__(f"Medium is not configured: {medium_id}", details)
        self.medium_id = medium_id


class OperationError(PulseError):
    """A single operation execution failed; no event is produced."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        if operation:
            details.setdefault("operation", operation)
        super().__init__(message, details)
        self.operation = operation


class SendError(PulseError):
    """A medium failed to deliver rendered content."""


class DispatchError(PulseError):
    """One or more mediums failed while broadcasting an alert.

    Every configured medium has still been attempted when this is raised.

    Attributes:
        failures: Mapping of medium id to the failure description
    """

    def __init__(self, failures: Mapping[str, str], rule: Optional[str] = None) -> None:
        self.failures = dict(failures)
        summary = "; ".join(f"{medium}: {reason}" for medium, reason in self.failures.items())
        details: Dict[str, Any] = {"mediums": ", ".join(self.failures)}
        if rule:
            details["rule"] = rule
        super().__init__(f"Broadcast failed on {len(self.failures)} medium(s): {summary}", details)
