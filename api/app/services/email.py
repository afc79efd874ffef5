"""Email sending via SMTP."""

import logging
from email.message import EmailMessage

import aiosmtplib

from app.core.config import settings

logger = logging.getLogger(__name__)


async def send_email(to: str, subject: str, body: str) -> None:
    """Send a plain-text email via SMTP."""
    message = EmailMessage()
    message["From"] = settings.smtp_from
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    await aiosmtplib.send(message, hostname=settings.smtp_host, port=settings.smtp_port)


async def send_notification_email(to: str, title: str, message: str, action_url: str | None = None) -> None:
    """Mirror an in-app notification to the user's inbox."""
    body = f"Hi,\n\n{message}\n\n"
    if action_url:
        body += f"Open it here:\n{settings.frontend_url}{action_url}\n\n"
    body += f"{settings.app_name}"
    await send_email(to, title, body)
    logger.info("Notification email %r sent to %s", title, to)
