"""Medium writing alerts to the application log."""

import logging
import re

from pulse_cli.alerts.rules import RenderedContent

logger = logging.getLogger(__name__)

_TAG = re.compile(r"<[^>]+>")


class LogMedium:
    """Logs every alert at a fixed level.

    Useful as a default medium and for dry runs.
    """

    def __init__(self, medium_id: str = "log", level: int = logging.WARNING) -> None:
        self.medium_id = medium_id
        self._level = level

    async def send(self, content: RenderedContent) -> None:
        text = _TAG.sub(" ", content.body)
        text = " ".join(text.split())
        logger.log(self._level, f"{content.subject}: {text}")
