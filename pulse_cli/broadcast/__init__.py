"""Alert broadcast to delivery mediums."""

from pulse_cli.broadcast.base import Medium
from pulse_cli.broadcast.dispatcher import BroadcastDispatcher
from pulse_cli.broadcast.log import LogMedium
from pulse_cli.broadcast.smtp import EmailMedium

__all__ = [
    "Medium",
    "BroadcastDispatcher",
    "LogMedium",
    "EmailMedium",
]
