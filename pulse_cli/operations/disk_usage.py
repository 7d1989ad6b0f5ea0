"""Filesystem disk usage check."""

import asyncio
import logging
import shutil
from typing import Any, Dict, List, Mapping

from pulse_cli.events.bus import Event
from pulse_cli.exceptions import OperationError
from pulse_cli.operations.base import Operation

logger = logging.getLogger(__name__)

HIGH_DISK_USAGE = "high-disk-usage"
DISK_USAGE = "disk-usage"


class DiskUsageOperation(Operation):
    """Samples disk usage of configured mounts.

    Emits ``high-disk-usage`` when any mount is above its threshold and
    ``disk-usage`` otherwise. The payload carries one reading per mount.

    Example:
        operation = DiskUsageOperation({"/": 90.0, "/var": 80.0})
        event = await operation.execute()
    """

    name = "check-disk-usage"

    def __init__(self, thresholds: Mapping[str, float]) -> None:
        """Initialize the check.

        Args:
            thresholds: Maximum usage percentage per mount point
        """
        super().__init__({"thresholds": dict(thresholds)})
        if not thresholds:
            raise ValueError("DiskUsageOperation needs at least one mount")
        self._thresholds = dict(thresholds)

    @property
    def mounts(self) -> List[str]:
        return list(self._thresholds)

    async def execute(self) -> Event:
        readings = await asyncio.gather(
            *(asyncio.to_thread(self._read, mount, limit) for mount, limit in self._thresholds.items())
        )
        over = [reading for reading in readings if reading["over_threshold"]]
        event_name = HIGH_DISK_USAGE if over else DISK_USAGE
        if over:
            logger.info(f"Disk usage above threshold on {', '.join(r['mount'] for r in over)}")
        return self.event(event_name, {"readings": list(readings)})

    def _read(self, mount: str, max_usage: float) -> Dict[str, Any]:
        try:
            usage = shutil.disk_usage(mount)
        except OSError as e:
            raise OperationError(f"Cannot read disk usage of {mount}: {e}", operation=self.name) from e

        percent = (usage.used / usage.total * 100) if usage.total else 0.0
        return {
            "mount": mount,
            "percent_disk_used": round(percent, 2),
            "max_usage": max_usage,
            "over_threshold": percent > max_usage,
            "total_bytes": usage.total,
            "used_bytes": usage.used,
            "free_bytes": usage.free,
        }
