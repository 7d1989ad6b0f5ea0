"""Email medium sending over SMTP with aiosmtplib."""

import logging
from email.mime.text import MIMEText
from typing import Optional, Sequence

import aiosmtplib

from pulse_cli.alerts.rules import RenderedContent
from pulse_cli.exceptions import SendError

logger = logging.getLogger(__name__)


class EmailMedium:
    """Sends alerts as HTML email over SMTP.

    Example:
        medium = EmailMedium(
            smtp_host="smtp.example.com",
            from_address="pulse@example.com",
            recipients=["ops@example.com"],
            username="pulse",
            password="secret",
        )
        await medium.send(RenderedContent("[PULSE] High Disk Usage", "..."))
    """

    def __init__(
        self,
        smtp_host: str,
        from_address: str,
        recipients: Sequence[str],
        smtp_port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        start_tls: bool = True,
        timeout: float = 30.0,
        medium_id: str = "email",
    ) -> None:
        if not recipients:
            raise ValueError("EmailMedium needs at least one recipient")

        self.medium_id = medium_id
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._from_address = from_address
        self._recipients = list(recipients)
        self._username = username
        self._password = password
        self._start_tls = start_tls
        self._timeout = timeout

    @classmethod
    def from_config(cls, config) -> "EmailMedium":
        """Build from an ``EmailConfig`` section."""
        return cls(
            smtp_host=config.smtp_host,
            smtp_port=config.smtp_port,
            from_address=config.from_address,
            recipients=config.recipients,
            username=config.username or None,
            password=config.password or None,
            start_tls=config.start_tls,
        )

    def build_message(self, content: RenderedContent) -> MIMEText:
        msg = MIMEText(content.body, "html")
        msg["Subject"] = content.subject
        msg["From"] = self._from_address
        msg["To"] = ", ".join(self._recipients)
        return msg

    async def send(self, content: RenderedContent) -> None:
        msg = self.build_message(content)
        try:
            await aiosmtplib.send(
                msg,
                hostname=self._smtp_host,
                port=self._smtp_port,
                username=self._username,
                password=self._password,
                start_tls=self._start_tls,
                timeout=self._timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise SendError(f"SMTP delivery failed: {e}", {"host": self._smtp_host}) from e

        logger.info(f"Sent '{content.subject}' to {len(self._recipients)} recipient(s)")
