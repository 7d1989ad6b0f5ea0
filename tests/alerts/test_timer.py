"""Tests for the APScheduler-backed digest window timer."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from apscheduler.jobstores.base import JobLookupError

from pulse_cli.alerts.timer import SchedulerWindowTimer, WindowTimer
from pulse_cli.scheduler.loop import create_scheduler


class TestSchedulerWindowTimer:
    """Tests for SchedulerWindowTimer."""

    def test_implements_protocol(self):
        """Test the timer satisfies the WindowTimer protocol."""
        assert isinstance(SchedulerWindowTimer(MagicMock()), WindowTimer)

    def test_schedule_adds_date_job(self):
        """Test scheduling adds a replaceable one-shot job per key."""
        scheduler = MagicMock()
        timer = SchedulerWindowTimer(scheduler)
        deadline = datetime(2024, 1, 1, tzinfo=timezone.utc)

        async def callback():
            pass

        timer.schedule("disk-digest", deadline, callback)

        kwargs = scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == "digest:disk-digest"
        assert kwargs["replace_existing"] is True
        assert kwargs["misfire_grace_time"] is None
        assert timer.pending == {"disk-digest"}

    def test_cancel_removes_job(self):
        """Test cancelling removes the job and forgets the key."""
        scheduler = MagicMock()
        timer = SchedulerWindowTimer(scheduler)

        async def callback():
            pass

        timer.schedule("disk-digest", datetime.now(timezone.utc), callback)
        timer.cancel("disk-digest")

        scheduler.remove_job.assert_called_once_with("digest:disk-digest")
        assert timer.pending == set()

    def test_cancel_unknown_key(self):
        """Test cancelling a key without a job is harmless."""
        scheduler = MagicMock()
        scheduler.remove_job.side_effect = JobLookupError("digest:none")
        timer = SchedulerWindowTimer(scheduler)

        timer.cancel("none")

    @pytest.mark.asyncio
    async def test_fires_on_running_scheduler(self):
        """Test the callback runs when the deadline passes."""
        scheduler = create_scheduler()
        scheduler.start()
        timer = SchedulerWindowTimer(scheduler)
        fired = asyncio.Event()

        async def callback():
            fired.set()

        try:
            timer.schedule("quick", datetime.now(timezone.utc) + timedelta(milliseconds=100), callback)
            await asyncio.wait_for(fired.wait(), timeout=5)
        finally:
            scheduler.shutdown(wait=False)

        assert timer.pending == set()
