"""
Repository classes for database access.

Each repository wraps a session and exposes the queries the event store
and the CLI need.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from pulse_cli.database.models import DiskUsage, OperationRunRecord, Reading, Tweet


class ReadingRepository:
    """
    Repository for recorded events and disk usage readings.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def create(
        self,
        event_id: str,
        event_name: str,
        source: str,
        payload: Dict[str, Any],
        occurred_at: datetime,
    ) -> Reading:
        """
        Record an event.

        Returns:
            Created Reading instance
        """
        reading = Reading(
            event_id=event_id,
            event_name=event_name,
            source=source,
            payload=payload,
            occurred_at=occurred_at,
        )
        self.session.add(reading)
        self.session.flush()
        return reading

    def exists(self, event_id: str) -> bool:
        return self.session.query(Reading.id).filter(Reading.event_id == event_id).first() is not None

    def add_disk_usage(self, mount: str, percent_disk_used: float, recorded_at: datetime) -> DiskUsage:
        usage = DiskUsage(mount=mount, percent_disk_used=percent_disk_used, recorded_at=recorded_at)
        self.session.add(usage)
        return usage

    def get_recent(
        self,
        event_name: Optional[str] = None,
        limit: int = 20,
    ) -> List[Reading]:
        """
        Get the most recent readings.

        Args:
            event_name: Filter by event name (optional)
            limit: Maximum number of results

        Returns:
            Readings ordered by occurred_at descending
        """
        query = self.session.query(Reading).order_by(desc(Reading.occurred_at))
        if event_name:
            query = query.filter(Reading.event_name == event_name)
        return query.limit(limit).all()

    def get_disk_usage(self, mount: Optional[str] = None, limit: int = 20) -> List[DiskUsage]:
        """Get the most recent disk usage readings, newest first."""
        query = self.session.query(DiskUsage).order_by(desc(DiskUsage.recorded_at))
        if mount:
            query = query.filter(DiskUsage.mount == mount)
        return query.limit(limit).all()

    def add_tweet(self, **fields: Any) -> Tweet:
        tweet = Tweet(**fields)
        self.session.add(tweet)
        return tweet

    def get_tweets(self, group_name: Optional[str] = None, limit: int = 20, popular: bool = False) -> List[Tweet]:
        """
        Get recorded tweets.

        Args:
            group_name: Filter by term group (optional)
            limit: Maximum number of results
            popular: Order by favourite count instead of recency

        Returns:
            Tweets, newest or most favourited first
        """
        order = desc(Tweet.favorite_count) if popular else desc(Tweet.tweeted_at)
        query = self.session.query(Tweet).order_by(order)
        if group_name:
            query = query.filter(Tweet.group_name == group_name)
        return query.limit(limit).all()

    def count(self) -> int:
        return self.session.query(Reading).count()

    def delete_older_than(self, before: datetime) -> int:
        """
        Delete readings recorded before a given time.

        Returns:
            Number of readings deleted
        """
        deleted = self.session.query(Reading).filter(Reading.occurred_at < before).delete()
        deleted += self.session.query(DiskUsage).filter(DiskUsage.recorded_at < before).delete()
        deleted += self.session.query(Tweet).filter(Tweet.tweeted_at < before).delete()
        return deleted


class OperationRunRepository:
    """
    Repository for operation execution history.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def create(
        self,
        operation_name: str,
        started_at: datetime,
        completed_at: Optional[datetime] = None,
        success: bool = False,
        event_name: Optional[str] = None,
        error: Optional[str] = None,
        tick: int = 0,
    ) -> OperationRunRecord:
        """
        Record an operation execution.

        Returns:
            Created OperationRunRecord instance
        """
        record = OperationRunRecord(
            operation_name=operation_name,
            started_at=started_at,
            completed_at=completed_at,
            success=success,
            event_name=event_name,
            error=error,
            tick=tick,
        )
        self.session.add(record)
        self.session.flush()
        return record

    def get_history(
        self,
        operation_name: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[OperationRunRecord]:
        """
        Get execution history.

        Args:
            operation_name: Filter by operation (optional)
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            Runs ordered by started_at descending
        """
        query = self.session.query(OperationRunRecord).order_by(desc(OperationRunRecord.started_at))
        if operation_name:
            query = query.filter(OperationRunRecord.operation_name == operation_name)
        return query.offset(offset).limit(limit).all()

    def get_success_count(self, operation_name: Optional[str] = None) -> int:
        query = self.session.query(OperationRunRecord).filter(OperationRunRecord.success.is_(True))
        if operation_name:
            query = query.filter(OperationRunRecord.operation_name == operation_name)
        return query.count()

    def get_failure_count(self, operation_name: Optional[str] = None) -> int:
        query = self.session.query(OperationRunRecord).filter(OperationRunRecord.success.is_(False))
        if operation_name:
            query = query.filter(OperationRunRecord.operation_name == operation_name)
        return query.count()

    def delete_older_than(self, before: datetime) -> int:
        """
        Delete runs started before a given time.

        Returns:
            Number of runs deleted
        """
        return self.session.query(OperationRunRecord).filter(OperationRunRecord.started_at < before).delete()
