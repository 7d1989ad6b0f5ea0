"""Tests for the email and log mediums."""

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from pulse_cli.alerts.rules import RenderedContent
from pulse_cli.broadcast.base import Medium
from pulse_cli.broadcast.log import LogMedium
from pulse_cli.broadcast.smtp import EmailMedium
from pulse_cli.exceptions import SendError


def make_medium(**kwargs) -> EmailMedium:
    options = {
        "smtp_host": "smtp.example.com",
        "from_address": "pulse@example.com",
        "recipients": ["ops@example.com", "oncall@example.com"],
        "username": "pulse",
        "password": "secret",
    }
    options.update(kwargs)
    return EmailMedium(**options)


class TestEmailMedium:
    """Tests for EmailMedium."""

    def test_is_medium(self):
        """Test EmailMedium satisfies the Medium protocol."""
        assert isinstance(make_medium(), Medium)

    def test_requires_recipients(self):
        """Test an empty recipient list is rejected."""
        with pytest.raises(ValueError):
            make_medium(recipients=[])

    def test_build_message(self):
        """Test the message carries subject, addresses and html body."""
        msg = make_medium().build_message(RenderedContent("[PULSE] High Disk Usage", "<p>full</p>"))

        assert msg["Subject"] == "[PULSE] High Disk Usage"
        assert msg["From"] == "pulse@example.com"
        assert msg["To"] == "ops@example.com, oncall@example.com"
        assert msg.get_content_subtype() == "html"

    @pytest.mark.asyncio
    async def test_send(self):
        """Test send hands the message to aiosmtplib."""
        medium = make_medium(smtp_port=2525, start_tls=False)

        with patch("pulse_cli.broadcast.smtp.aiosmtplib.send", new_callable=AsyncMock) as mock_send:
            await medium.send(RenderedContent("subject", "<p>body</p>"))

        mock_send.assert_awaited_once()
        message = mock_send.call_args.args[0]
        kwargs = mock_send.call_args.kwargs
        assert message["Subject"] == "subject"
        assert kwargs["hostname"] == "smtp.example.com"
        assert kwargs["port"] == 2525
        assert kwargs["username"] == "pulse"
        assert kwargs["start_tls"] is False

    @pytest.mark.asyncio
    async def test_send_failure(self):
        """Test SMTP errors surface as SendError."""
        medium = make_medium()

        with patch(
            "pulse_cli.broadcast.smtp.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=aiosmtplib.SMTPException("boom"),
        ):
            with pytest.raises(SendError) as exc_info:
                await medium.send(RenderedContent("subject", "body"))

        assert "boom" in str(exc_info.value)
        assert exc_info.value.details["host"] == "smtp.example.com"

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        """Test network errors surface as SendError."""
        medium = make_medium()

        with patch(
            "pulse_cli.broadcast.smtp.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=ConnectionRefusedError("refused"),
        ):
            with pytest.raises(SendError):
                await medium.send(RenderedContent("subject", "body"))

    def test_from_config(self):
        """Test building from a config section drops empty credentials."""
        section = SimpleNamespace(
            smtp_host="mail.local",
            smtp_port=25,
            from_address="pulse@local",
            recipients=["root@local"],
            username="",
            password="",
            start_tls=False,
        )

        medium = EmailMedium.from_config(section)

        assert medium.medium_id == "email"
        assert medium._username is None
        assert medium._password is None
        assert medium._smtp_port == 25


class TestLogMedium:
    """Tests for LogMedium."""

    @pytest.mark.asyncio
    async def test_logs_plain_text(self, caplog):
        """Test html tags are stripped from logged alerts."""
        medium = LogMedium()

        with caplog.at_level(logging.WARNING, logger="pulse_cli.broadcast.log"):
            await medium.send(RenderedContent("[PULSE] High Disk Usage", "<p>Disk <b>full</b></p>"))

        assert "[PULSE] High Disk Usage: Disk full" in caplog.text
        assert "<p>" not in caplog.text

    def test_custom_id(self):
        """Test the medium id can be overridden."""
        assert LogMedium("audit").medium_id == "audit"
