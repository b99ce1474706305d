"""
Outgoing email for sale notifications.

``SMTPEmailSender`` runs the blocking ``smtplib`` session in a worker thread.
``LoggingEmailSender`` is used when no SMTP host is configured. It only logs
what would have been sent.
"""

from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage
from typing import Protocol, runtime_checkable

from salesbot.config.logging import get_logger
from salesbot.config.settings import EmailSettings

logger = get_logger(__name__)


@runtime_checkable
class EmailSender(Protocol):
    async def send_email(self, to: str, subject: str, html: str) -> None:
        ...


class SMTPEmailSender:
    """Send HTML email through an SMTP server."""

    def __init__(self, settings: EmailSettings, timeout: float = 30.0):
        if not settings.smtp_host:
            raise ValueError("SMTP host not configured. Set EMAIL__SMTP_HOST.")
        self._settings = settings
        self._timeout = timeout

    def _build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = f'"{self._settings.sender_name}" <{self._settings.smtp_user}>'
        message["To"] = to
        message["Subject"] = subject
        message.set_content("Este mensaje requiere un cliente con soporte HTML.")
        message.add_alternative(html, subtype="html")
        return message

    def _send_blocking(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._settings.smtp_host, self._settings.smtp_port, timeout=self._timeout) as smtp:
            if self._settings.use_tls:
                smtp.starttls()
            if self._settings.smtp_user:
                smtp.login(self._settings.smtp_user, self._settings.smtp_password)
            smtp.send_message(message)

    async def send_email(self, to: str, subject: str, html: str) -> None:
        message = self._build_message(to, subject, html)
        await asyncio.to_thread(self._send_blocking, message)
        logger.info(f"Email sent to {to}: {subject}")


class LoggingEmailSender:
    """Record emails instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []

    async def send_email(self, to: str, subject: str, html: str) -> None:
        self.sent.append({"to": to, "subject": subject, "html": html})
        logger.info(f"[email not sent - no SMTP host] to={to} subject={subject!r} ({len(html)} chars)")


def create_email_sender(settings: EmailSettings) -> EmailSender:
    if settings.smtp_host:
        return SMTPEmailSender(settings)
    return LoggingEmailSender()


__all__ = ["EmailSender", "SMTPEmailSender", "LoggingEmailSender", "create_email_sender"]
