"""Medium interface.

A medium delivers rendered alert content to one destination (an email
address list, the application log...). Mediums are identified by a short
id that alert rules reference.
"""

from typing import Protocol, runtime_checkable

from pulse_cli.alerts.rules import RenderedContent


@runtime_checkable
class Medium(Protocol):
    """Delivers rendered alerts.

    ``send`` raises ``SendError`` when delivery fails.
    """

    medium_id: str

    async def send(self, content: RenderedContent) -> None: ...
