"""Notification collaborator.

Notifications are written in their own session so they never join (or block) the
transaction of the operation that triggered them. High-priority notifications are
also emailed when CB_EMAIL_NOTIFICATIONS is on.
"""

import logging

from app.core.config import settings
from app.core.database import async_session_factory
from app.models.member import User
from app.models.notification import Notification, NotificationCategory, NotificationPriority
from app.services.email import send_notification_email

logger = logging.getLogger(__name__)

EMAIL_PRIORITIES = (NotificationPriority.HIGH, NotificationPriority.URGENT)


async def create_notification(
    user_id: int,
    title: str,
    message: str,
    category: NotificationCategory,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    action_url: str | None = None,
    action_label: str | None = None,
) -> Notification:
    async with async_session_factory() as db:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            category=category,
            priority=priority,
            action_url=action_url,
            action_label=action_label,
        )
        db.add(notification)
        await db.commit()
        recipient = await db.get(User, user_id) if settings.email_notifications else None

    if recipient is not None and priority in EMAIL_PRIORITIES:
        try:
            await send_notification_email(recipient.email, title, message, action_url)
        except Exception:
            logger.warning("Notification email to user %s failed", user_id, exc_info=True)

    return notification
