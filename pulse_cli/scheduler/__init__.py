"""Tick scheduler for recurring operation execution.

The scheduler loop fires on a fixed interval and runs every operation
whose schedule is due, either on every tick or by cron expression.
"""

from pulse_cli.scheduler.cron import CronExpr, next_fire, resolve_timezone
from pulse_cli.scheduler.loop import LoopState, OperationRun, SchedulerLoop, create_scheduler
from pulse_cli.scheduler.registry import CronSchedule, EveryTick, OperationRegistry, Schedule

__all__ = [
    "CronExpr",
    "next_fire",
    "resolve_timezone",
    "LoopState",
    "OperationRun",
    "SchedulerLoop",
    "create_scheduler",
    "CronSchedule",
    "EveryTick",
    "OperationRegistry",
    "Schedule",
]
