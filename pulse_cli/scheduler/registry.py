"""Operation registry.

Maps operation names to executable operations and tracks the schedules
that trigger them. Schedules either fire on every tick or follow a cron
expression; cron schedules are reported due exactly once per fire.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from pulse_cli.events.bus import utcnow
from pulse_cli.exceptions import InvalidCronExpr, UnknownOperation
from pulse_cli.operations.base import Operation
from pulse_cli.scheduler.cron import CronExpr, next_fire

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EveryTick:
    """Trigger that fires on every scheduler tick."""

    def __str__(self) -> str:
        return "every tick"


@dataclass(frozen=True)
class CronSchedule:
    """Trigger that fires according to a cron expression."""

    expr: CronExpr

    def __str__(self) -> str:
        return f"cron '{self.expr}'"


Trigger = Union[EveryTick, CronSchedule]


@dataclass(frozen=True)
class Schedule:
    """A configured schedule entry.

    Attributes:
        operation_name: Name of the registered operation to run
        trigger: When to run it
    """

    operation_name: str
    trigger: Trigger = field(default_factory=EveryTick)

    @property
    def label(self) -> str:
        return f"{self.operation_name} ({self.trigger})"


@dataclass
class _ScheduleState:
    schedule: Schedule
    next_fire_at: Optional[datetime] = None
    exhausted: bool = False


class OperationRegistry:
    """Registry of operations and their schedules.

    Example:
        registry = OperationRegistry()
        registry.register("check-disk-usage", DiskUsageOperation(...))
        registry.register("fetch-news", NewsOperation(...),
                          CronSchedule(CronExpr.parse("0 0 7 * * *")))
        registry.activate(now)

        for name, operation in registry.due_operations(now):
            ...
    """

    def __init__(self) -> None:
        self._operations: Dict[str, Operation] = {}
        self._schedules: List[_ScheduleState] = []
        self._active = False

    @property
    def operations(self) -> Dict[str, Operation]:
        """Registered operations by name."""
        return dict(self._operations)

    @property
    def schedules(self) -> List[Schedule]:
        return [state.schedule for state in self._schedules]

    def register_operation(self, name: str, operation: Operation) -> None:
        """Register an operation under a name, replacing any previous one."""
        if name in self._operations:
            logger.warning(f"Replacing registered operation {name}")
        self._operations[name] = operation

    def add_schedule(self, schedule: Schedule) -> None:
        """Add a schedule. Its operation is checked when the registry is activated."""
        state = _ScheduleState(schedule)
        self._schedules.append(state)
        if self._active:
            self._validate(state)
            if isinstance(schedule.trigger, CronSchedule):
                state.next_fire_at = next_fire(schedule.trigger.expr, utcnow())

    def register(self, name: str, operation: Operation, trigger: Optional[Trigger] = None) -> None:
        """Register an operation and schedule it.

        Args:
            name: Operation name
            operation: The operation to run
            trigger: When to run it (default: every tick)
        """
        self.register_operation(name, operation)
        self.add_schedule(Schedule(name, trigger or EveryTick()))

    def get(self, name: str) -> Operation:
        """Get an operation by name.

        Raises:
            UnknownOperation: If no operation is registered under the name
        """
        try:
            return self._operations[name]
        except KeyError:
            raise UnknownOperation(name) from None

    def activate(self, now: datetime) -> None:
        """Validate every schedule and compute the first cron fire times.

        Raises:
            UnknownOperation: If a schedule references an unregistered operation
            InvalidCronExpr: If a cron schedule never fires
        """
        for state in self._schedules:
            self._validate(state)
        for state in self._schedules:
            if isinstance(state.schedule.trigger, CronSchedule):
                try:
                    state.next_fire_at = next_fire(state.schedule.trigger.expr, now)
                except InvalidCronExpr as e:
                    raise InvalidCronExpr(e.expression, e.reason, schedule=state.schedule.label) from e
        self._active = True
        logger.debug(f"Registry activated with {len(self._schedules)} schedules")

    def _validate(self, state: _ScheduleState) -> None:
        if state.schedule.operation_name not in self._operations:
            raise UnknownOperation(state.schedule.operation_name, schedule=state.schedule.label)

    def due_operations(self, now: datetime) -> List[Tuple[str, Operation]]:
        """Get the operations due at ``now``.

        Every-tick schedules are always due. A cron schedule is due once its
        next fire time has been reached; its next fire time is then
        recomputed from ``now``.

        Args:
            now: Tick instant

        Returns:
            (name, operation) pairs in schedule order
        """
        if not self._active:
            self.activate(now)

        due: List[Tuple[str, Operation]] = []

        for state in self._schedules:
            schedule = state.schedule
            if isinstance(schedule.trigger, EveryTick):
                due.append((schedule.operation_name, self._operations[schedule.operation_name]))
                continue

            if state.exhausted or state.next_fire_at is None:
                continue
            if state.next_fire_at > now:
                continue

            due.append((schedule.operation_name, self._operations[schedule.operation_name]))
            try:
                state.next_fire_at = next_fire(schedule.trigger.expr, now)
            except InvalidCronExpr:
                logger.info(f"Schedule {schedule.label} has no further fire times, dropping it")
                state.exhausted = True
                state.next_fire_at = None

        return due

    def next_fire_times(self) -> List[Tuple[Schedule, Optional[datetime]]]:
        """Get each schedule with its next cron fire time (None for every-tick)."""
        return [(state.schedule, state.next_fire_at) for state in self._schedules]
