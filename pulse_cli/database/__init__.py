"""Persistence of events and operation runs."""

from pulse_cli.database.models import Base, DiskUsage, OperationRunRecord, Reading, Tweet
from pulse_cli.database.repositories import OperationRunRepository, ReadingRepository
from pulse_cli.database.store import SqlEventStore

__all__ = [
    "Base",
    "DiskUsage",
    "OperationRunRecord",
    "Reading",
    "Tweet",
    "OperationRunRepository",
    "ReadingRepository",
    "SqlEventStore",
]
