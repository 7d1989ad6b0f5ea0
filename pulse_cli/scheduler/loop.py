"""Tick-driven scheduler loop.

The SchedulerLoop fires on a fixed interval. On every tick it asks the
OperationRegistry which operations are due and starts each of them as an
independent asyncio task; the tick returns without waiting for them. A
completed execution publishes its event on the EventBus, a failed one is
logged and publishes nothing.

Ticks are driven by an APScheduler interval job, so fire times are
computed from the start time plus a whole number of intervals and the
time spent dispatching never accumulates as drift.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum, auto
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pulse_cli.events.bus import Event, EventBus, utcnow
from pulse_cli.exceptions import OperationError
from pulse_cli.operations.base import Operation
from pulse_cli.scheduler.registry import OperationRegistry

logger = logging.getLogger(__name__)

TICK_JOB_ID = "pulse-tick"


class LoopState(Enum):
    """State of the scheduler loop."""

    IDLE = auto()  # Waiting for the next tick
    TICKING = auto()  # Dispatching due operations
    STOPPED = auto()  # Shut down, no further ticks


@dataclass
class OperationRun:
    """Record of a single operation execution.

    Attributes:
        operation_name: Name the operation was scheduled under
        started_at: When execution started
        completed_at: When execution finished
        success: Whether an event was produced
        error: Error message if failed
        event: The produced event, if any
        tick: Number of the tick that dispatched the execution (0 for manual runs)
    """

    operation_name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    success: bool = False
    error: Optional[str] = None
    event: Optional[Event] = None
    tick: int = 0

    @property
    def event_name(self) -> Optional[str]:
        return self.event.name if self.event else None

    @property
    def duration(self) -> Optional[timedelta]:
        if self.completed_at is None:
            return None
        return self.completed_at - self.started_at


RunRecorder = Callable[[OperationRun], Awaitable[None]]


def create_scheduler(misfire_grace_time: int = 30, tz: Union[str, tzinfo] = "UTC") -> AsyncIOScheduler:
    """Create and configure the APScheduler instance driving ticks and digest windows.

    Args:
        misfire_grace_time: Seconds a late job may still run
        tz: Default timezone for jobs without an explicit one
    """
    jobstores = {"default": MemoryJobStore()}

    executors = {"default": AsyncIOExecutor()}

    job_defaults = {
        "coalesce": True,  # Combine missed runs
        "max_instances": 1,  # One instance per job
        "misfire_grace_time": misfire_grace_time,
    }

    scheduler = AsyncIOScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone=tz,
    )

    def on_job_error(event: Any) -> None:
        exception = getattr(event, "exception", "Unknown error")
        logger.error(f"Scheduler job {event.job_id} failed: {exception}")

    def on_job_missed(event: Any) -> None:
        logger.warning(f"Scheduler job {event.job_id} missed its run at {event.scheduled_run_time}")

    scheduler.add_listener(on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(on_job_missed, EVENT_JOB_MISSED)

    return scheduler


class SchedulerLoop:
    """Fixed-interval tick loop dispatching due operations concurrently.

    Example:
        loop = SchedulerLoop(registry, bus, tick_interval=5.0, operation_timeout=60)
        loop.start(apscheduler)
        ...
        await loop.stop(grace=10)
    """

    def __init__(
        self,
        registry: OperationRegistry,
        bus: EventBus,
        tick_interval: float = 5.0,
        operation_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
        run_recorder: Optional[RunRecorder] = None,
    ) -> None:
        """Initialize the loop.

        Args:
            registry: Registry deciding which operations are due
            bus: Bus that produced events are published on
            tick_interval: Seconds between ticks
            operation_timeout: Seconds an execution may take before it is
                treated as failed (None for no limit)
            clock: Source of the current time
            run_recorder: Async callable persisting each OperationRun
        """
        if tick_interval <= 0:
            raise ValueError("tick_interval must be positive")

        self._registry = registry
        self._bus = bus
        self._tick_interval = tick_interval
        self._operation_timeout = operation_timeout
        self._clock = clock
        self._run_recorder = run_recorder

        self._state = LoopState.IDLE
        self._tick_count = 0
        self._in_flight: Set[asyncio.Task] = set()
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def tick_interval(self) -> float:
        return self._tick_interval

    @property
    def in_flight(self) -> int:
        """Number of executions currently running."""
        return len(self._in_flight)

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._state is not LoopState.STOPPED

    def start(self, scheduler: AsyncIOScheduler) -> None:
        """Schedule the tick job on an APScheduler instance.

        Args:
            scheduler: Running (or about to run) AsyncIOScheduler
        """
        if self._state is LoopState.STOPPED:
            raise RuntimeError("Scheduler loop has been stopped")

        self._scheduler = scheduler
        scheduler.add_job(
            self._on_tick,
            trigger=IntervalTrigger(seconds=self._tick_interval, timezone=timezone.utc),
            id=TICK_JOB_ID,
            name="Pulse tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Scheduler loop started with a {self._tick_interval}s tick")

    async def _on_tick(self) -> None:
        await self.tick()

    async def tick(self, now: Optional[datetime] = None) -> List[asyncio.Task]:
        """Run one tick.

        Starts every due operation and returns immediately.

        Args:
            now: Tick instant (default: the clock's current time)

        Returns:
            The started execution tasks
        """
        if self._state is LoopState.STOPPED:
            logger.debug("Ignoring tick after shutdown")
            return []

        now = now or self._clock()
        self._state = LoopState.TICKING
        self._tick_count += 1
        tasks: List[asyncio.Task] = []

        try:
            due = self._registry.due_operations(now)
            if due:
                logger.debug(f"Tick {self._tick_count}: dispatching {', '.join(name for name, _ in due)}")
            for name, operation in due:
                tasks.append(self._spawn(name, operation, self._tick_count))
        except Exception as e:
            logger.error(f"Tick {self._tick_count} failed to dispatch operations: {e}", exc_info=True)
        finally:
            if self._state is LoopState.TICKING:
                self._state = LoopState.IDLE

        return tasks

    def _spawn(self, name: str, operation: Operation, tick: int) -> asyncio.Task:
        task = asyncio.create_task(self.execute(name, operation, tick), name=f"pulse-op:{name}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def execute(self, name: str, operation: Operation, tick: int = 0) -> OperationRun:
        """Execute one operation and publish its event.

        Failures are contained: they are logged, recorded and never raised.

        Args:
            name: Name the operation is registered under
            operation: The operation to execute
            tick: Tick number that triggered the execution

        Returns:
            The execution record
        """
        run = OperationRun(operation_name=name, started_at=self._clock(), tick=tick)

        try:
            if self._operation_timeout:
                event = await asyncio.wait_for(operation.execute(), self._operation_timeout)
            else:
                event = await operation.execute()
        except asyncio.TimeoutError:
            run.error = f"timed out after {self._operation_timeout}s"
            logger.error(f"Operation {name} {run.error}")
        except OperationError as e:
            run.error = str(e)
            logger.error(f"Operation {name} failed: {e}")
        except asyncio.CancelledError:
            run.error = "cancelled"
            run.completed_at = self._clock()
            logger.warning(f"Operation {name} was cancelled")
            await self._record(run)
            raise
        except Exception as e:
            run.error = str(e) or type(e).__name__
            logger.error(f"Operation {name} raised unexpectedly: {e}", exc_info=True)
        else:
            run.success = True
            run.event = event
            self._bus.publish(event)
            logger.debug(f"Operation {name} produced {event.name}")

        run.completed_at = self._clock()
        await self._record(run)
        return run

    async def _record(self, run: OperationRun) -> None:
        if self._run_recorder is None:
            return
        try:
            await self._run_recorder(run)
        except Exception as e:
            logger.error(f"Failed to record run of {run.operation_name}: {e}")

    async def wait_idle(self) -> None:
        """Wait until no execution is in flight."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def stop(self, grace: Optional[float] = None) -> None:
        """Stop ticking and settle in-flight executions.

        No tick runs after this is called. In-flight executions get ``grace``
        seconds to finish and are cancelled afterwards.

        Args:
            grace: Seconds to wait for in-flight executions (None waits forever)
        """
        if self._state is LoopState.STOPPED:
            return

        self._state = LoopState.STOPPED

        if self._scheduler is not None:
            try:
                self._scheduler.remove_job(TICK_JOB_ID)
            except JobLookupError:
                # Scheduler may already have been shut down
                pass

        pending = set(self._in_flight)
        if pending:
            logger.info(f"Waiting for {len(pending)} in-flight operation(s)")
            _, pending = await asyncio.wait(pending, timeout=grace)

        if pending:
            logger.warning(f"Abandoning {len(pending)} operation(s) after {grace}s grace period")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        logger.info(f"Scheduler loop stopped after {self._tick_count} ticks")
