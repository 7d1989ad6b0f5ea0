"""
SQLAlchemy models for the Pulse database.

Stores every published event, per-mount disk usage readings, tracked
tweets and the history of operation executions.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Create base class for all models
Base = declarative_base()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Reading(Base):
    """
    A published event.

    Every event that reaches the bus is recorded here with its payload.
    """

    __tablename__ = "readings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    event_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    source: Mapped[str] = mapped_column(String, nullable=False, default="", index=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert reading to dictionary representation."""
        return {
            "id": self.id,
            "event_id": self.event_id,
            "event_name": self.event_name,
            "source": self.source,
            "payload": self.payload,
            "occurred_at": _iso(self.occurred_at),
        }


class DiskUsage(Base):
    """Disk usage of one mount at one point in time."""

    __tablename__ = "disk_usage"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    mount: Mapped[str] = mapped_column(String, nullable=False, index=True)
    percent_disk_used: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "mount": self.mount,
            "percent_disk_used": self.percent_disk_used,
            "recorded_at": _iso(self.recorded_at),
        }


class Tweet(Base):
    """A tweet fetched for a tracked term group."""

    __tablename__ = "tweets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    twitter_tweet_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    group_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    favorite_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    retweet_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    username: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    lang: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    tweeted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "twitter_tweet_id": self.twitter_tweet_id,
            "group_name": self.group_name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "favorite_count": self.favorite_count,
            "retweet_count": self.retweet_count,
            "username": self.username,
            "lang": self.lang,
            "text": self.text,
            "tweeted_at": _iso(self.tweeted_at),
        }


class OperationRunRecord(Base):
    """
    Operation execution history.

    One row per execution, scheduled or manual, successful or not.
    """

    __tablename__ = "operation_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    operation_name: Mapped[str] = mapped_column(String, nullable=False, index=True)

    # Execution timing
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    tick: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Results
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    event_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert run to dictionary representation."""
        return {
            "id": self.id,
            "operation_name": self.operation_name,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "tick": self.tick,
            "success": self.success,
            "event_name": self.event_name,
            "error": self.error,
        }
