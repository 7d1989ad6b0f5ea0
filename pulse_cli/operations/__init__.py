"""Operations executed by the scheduler.

Each operation observes something and produces one event per execution.
"""

from pulse_cli.operations.base import Operation
from pulse_cli.operations.command import CommandOperation
from pulse_cli.operations.disk_usage import DiskUsageOperation
from pulse_cli.operations.factory import build_operations
from pulse_cli.operations.news import NewsOperation
from pulse_cli.operations.tweets import TweetsOperation

__all__ = [
    "Operation",
    "CommandOperation",
    "DiskUsageOperation",
    "NewsOperation",
    "TweetsOperation",
    "build_operations",
]
