"""SQL-backed event store.

Writes happen in a worker thread so the event loop never blocks on the
database. Failures are logged and swallowed: losing a reading must never
stall the pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from pulse_cli.database.connection import create_tables, get_db_session, get_session_maker, init_engine
from pulse_cli.database.repositories import OperationRunRepository, ReadingRepository
from pulse_cli.events.bus import Event

if TYPE_CHECKING:
    from pulse_cli.scheduler.loop import OperationRun

logger = logging.getLogger(__name__)


class SqlEventStore:
    """Persists events and operation runs.

    Example:
        store = SqlEventStore("sqlite:///pulse.db")
        bus.attach(store.append, label="event-store")
        loop = SchedulerLoop(registry, bus, run_recorder=store.record_run)
    """

    def __init__(self, database_url: str, create: bool = True) -> None:
        self._database_url = database_url
        self._engine = init_engine(database_url)
        self._session_factory = get_session_maker(self._engine)
        self._failures = 0
        if create:
            create_tables(self._engine)

    @property
    def database_url(self) -> str:
        return self._database_url

    @property
    def failure_count(self) -> int:
        """Number of writes that failed."""
        return self._failures

    async def append(self, event: Event) -> None:
        """Record a published event."""
        try:
            await asyncio.to_thread(self._append, event)
        except SQLAlchemyError as e:
            self._failures += 1
            logger.error(f"Failed to store {event.name} event {event.event_id}: {e}")

    def _append(self, event: Event) -> None:
        with get_db_session(self._session_factory) as session:
            repo = ReadingRepository(session)
            event_id = str(event.event_id)
            if repo.exists(event_id):
                # Redelivered event
                return
            repo.create(
                event_id=event_id,
                event_name=event.name,
                source=event.source,
                payload=_jsonable(dict(event.payload)),
                occurred_at=event.occurred_at,
            )
            for reading in event.payload.get("readings", []) or []:
                if "mount" in reading and "percent_disk_used" in reading:
                    repo.add_disk_usage(reading["mount"], reading["percent_disk_used"], event.occurred_at)
            for group in event.payload.get("groups", []) or []:
                for tweet in group.get("tweets", []) or []:
                    if "twitter_tweet_id" in tweet:
                        repo.add_tweet(**_tweet_fields(tweet, event.occurred_at))

    async def record_run(self, run: OperationRun) -> None:
        """Record an operation execution."""
        try:
            await asyncio.to_thread(self._record_run, run)
        except SQLAlchemyError as e:
            self._failures += 1
            logger.error(f"Failed to store run of {run.operation_name}: {e}")

    def _record_run(self, run: OperationRun) -> None:
        with get_db_session(self._session_factory) as session:
            OperationRunRepository(session).create(
                operation_name=run.operation_name,
                started_at=run.started_at,
                completed_at=run.completed_at,
                success=run.success,
                event_name=run.event_name,
                error=run.error,
                tick=run.tick,
            )

    def recent_readings(self, event_name: Optional[str] = None, limit: int = 20) -> List[Dict[str, Any]]:
        with get_db_session(self._session_factory) as session:
            return [r.to_dict() for r in ReadingRepository(session).get_recent(event_name, limit)]

    def recent_disk_usage(self, mount: Optional[str] = None, limit: int = 20) -> List[Dict[str, Any]]:
        with get_db_session(self._session_factory) as session:
            return [u.to_dict() for u in ReadingRepository(session).get_disk_usage(mount, limit)]

    def recent_tweets(
        self, group_name: Optional[str] = None, limit: int = 20, popular: bool = False
    ) -> List[Dict[str, Any]]:
        with get_db_session(self._session_factory) as session:
            return [t.to_dict() for t in ReadingRepository(session).get_tweets(group_name, limit, popular)]

    def recent_runs(self, operation_name: Optional[str] = None, limit: int = 20) -> List[Dict[str, Any]]:
        with get_db_session(self._session_factory) as session:
            return [r.to_dict() for r in OperationRunRepository(session).get_history(operation_name, limit)]

    def run_counts(self, operation_name: Optional[str] = None) -> Dict[str, int]:
        with get_db_session(self._session_factory) as session:
            repo = OperationRunRepository(session)
            return {
                "success": repo.get_success_count(operation_name),
                "failure": repo.get_failure_count(operation_name),
            }

    def prune(self, before: datetime) -> int:
        """Delete readings, disk usage, tweets and runs older than ``before``."""
        with get_db_session(self._session_factory) as session:
            deleted = ReadingRepository(session).delete_older_than(before)
            deleted += OperationRunRepository(session).delete_older_than(before)
        logger.info(f"Pruned {deleted} rows older than {before.isoformat()}")
        return deleted

    def close(self) -> None:
        self._engine.dispose()


def _tweet_fields(tweet: Dict[str, Any], fallback: datetime) -> Dict[str, Any]:
    """Column values for a tweet payload entry."""
    tweeted_at = fallback
    if tweet.get("tweeted_at"):
        try:
            tweeted_at = datetime.fromisoformat(str(tweet["tweeted_at"]).replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable tweet time {tweet['tweeted_at']!r}, using event time")
    return {
        "twitter_tweet_id": str(tweet["twitter_tweet_id"]),
        "group_name": tweet.get("group_name", ""),
        "latitude": tweet.get("latitude"),
        "longitude": tweet.get("longitude"),
        "favorite_count": int(tweet.get("favorite_count", 0)),
        "retweet_count": int(tweet.get("retweet_count", 0)),
        "username": tweet.get("username"),
        "lang": tweet.get("lang"),
        "text": tweet.get("text", ""),
        "tweeted_at": tweeted_at,
    }


def _jsonable(value: Any) -> Any:
    """Convert payload values the JSON column cannot store."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
