"""One-shot digest window timers.

Each digest rule has at most one pending timer, keyed by rule name.
Scheduling a key again replaces its pending timer.
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol, Set, runtime_checkable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class WindowTimer(Protocol):
    """Schedules and cancels keyed one-shot callbacks."""

    def schedule(self, key: str, deadline: datetime, callback: TimerCallback) -> None: ...

    def cancel(self, key: str) -> None: ...


class SchedulerWindowTimer:
    """WindowTimer backed by APScheduler ``DateTrigger`` jobs.

    Jobs are named ``digest:<key>`` so they show up alongside the tick job
    in the scheduler's job list.
    """

    JOB_PREFIX = "digest:"

    def __init__(self, scheduler: AsyncIOScheduler) -> None:
        self._scheduler = scheduler
        self._keys: Set[str] = set()

    @property
    def pending(self) -> Set[str]:
        """Keys with a scheduled timer."""
        return set(self._keys)

    def schedule(self, key: str, deadline: datetime, callback: TimerCallback) -> None:
        job_id = f"{self.JOB_PREFIX}{key}"
        self._keys.add(key)

        async def fire() -> None:
            self._keys.discard(key)
            await callback()

        self._scheduler.add_job(
            fire,
            trigger=DateTrigger(run_date=deadline, timezone=timezone.utc),
            id=job_id,
            name=f"Digest window for {key}",
            replace_existing=True,
            # A late window still has to be flushed
            misfire_grace_time=None,
        )
        logger.debug(f"Scheduled {job_id} at {deadline.isoformat()}")

    def cancel(self, key: str) -> None:
        self._keys.discard(key)
        try:
            self._scheduler.remove_job(f"{self.JOB_PREFIX}{key}")
        except JobLookupError:
            pass
