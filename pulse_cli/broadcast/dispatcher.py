"""Best-effort broadcast of alert payloads to mediums."""

import asyncio
import logging
from typing import Dict, Iterable, List, Set

from pulse_cli.alerts.rules import AlertPayload
from pulse_cli.broadcast.base import Medium
from pulse_cli.exceptions import DispatchError

logger = logging.getLogger(__name__)


class BroadcastDispatcher:
    """Sends alert payloads to every medium they name.

    A failing medium never prevents the others from being attempted; the
    failures are collected into a single ``DispatchError``.

    Example:
        dispatcher = BroadcastDispatcher([EmailMedium(...), LogMedium()])
        await dispatcher.dispatch(payload)

        # From the alert router's path
        dispatcher.submit(payload)
        await dispatcher.drain()
    """

    def __init__(self, mediums: Iterable[Medium] = ()) -> None:
        self._mediums: Dict[str, Medium] = {}
        for medium in mediums:
            self.add_medium(medium)
        self._pending: Set[asyncio.Task] = set()
        self._sent = 0
        self._failed = 0

    @property
    def medium_ids(self) -> List[str]:
        return list(self._mediums)

    @property
    def stats(self) -> Dict[str, int]:
        """Counts of successful and failed medium sends."""
        return {"sent": self._sent, "failed": self._failed, "pending": len(self._pending)}

    def add_medium(self, medium: Medium) -> None:
        if medium.medium_id in self._mediums:
            logger.warning(f"Replacing medium {medium.medium_id}")
        self._mediums[medium.medium_id] = medium

    async def dispatch(self, payload: AlertPayload) -> None:
        """Send a payload to each of its mediums.

        Raises:
            DispatchError: If any medium failed or is not configured; every
                other medium has still been attempted
        """
        failures: Dict[str, str] = {}
        targets: List[Medium] = []

        for medium_id in payload.mediums:
            medium = self._mediums.get(medium_id)
            if medium is None:
                failures[medium_id] = "medium is not configured"
                self._failed += 1
            else:
                targets.append(medium)

        results = await asyncio.gather(
            *(medium.send(payload.content) for medium in targets),
            return_exceptions=True,
        )
        for medium, result in zip(targets, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                failures[medium.medium_id] = str(result) or type(result).__name__
                self._failed += 1
            else:
                self._sent += 1

        if failures:
            raise DispatchError(failures, rule=payload.rule_name)

        logger.debug(f"Delivered {payload.alert_kind.value} for {payload.rule_name} to {len(targets)} medium(s)")

    def submit(self, payload: AlertPayload) -> None:
        """Dispatch a payload in the background, logging failures."""
        task = asyncio.create_task(self._dispatch_logged(payload), name=f"pulse-dispatch:{payload.rule_name}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _dispatch_logged(self, payload: AlertPayload) -> None:
        try:
            await self.dispatch(payload)
        except DispatchError as e:
            logger.error(f"Alert {payload.rule_name}: {e}")
        except Exception as e:
            logger.error(f"Alert {payload.rule_name} could not be dispatched: {e}", exc_info=True)

    async def drain(self) -> None:
        """Wait for every submitted dispatch to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
