"""Side effects of booking and session transitions.

Calendar calls are part of the operation: a failure is raised as
CollaboratorFailure. Notifications and group chats are advisory: a failure is
logged here and never reaches the caller.
"""

import asyncio
import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.calendar import CalendarEvent, EventVisibility
from app.models.notification import ConversationType, NotificationCategory, NotificationPriority
from app.services.calendar import create_event, update_event
from app.services.errors import CollaboratorFailure
from app.services.messaging import create_conversation
from app.services.notifications import create_notification

logger = logging.getLogger(__name__)


async def notify(
    user_id: int,
    title: str,
    message: str,
    category: NotificationCategory = NotificationCategory.CALENDAR,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    action_url: str | None = None,
    action_label: str | None = None,
) -> None:
    try:
        await create_notification(
            user_id=user_id,
            title=title,
            message=message,
            category=category,
            priority=priority,
            action_url=action_url,
            action_label=action_label,
        )
    except Exception:
        logger.exception("Notification %r to user %s failed", title, user_id)


async def notify_all(*notifications: dict) -> None:
    """Send several notifications concurrently; each one fails on its own."""
    await asyncio.gather(*(notify(**n) for n in notifications))


async def open_group_chat(coach_id: int, member_account_id: int, name: str) -> None:
    try:
        await create_conversation(coach_id, ConversationType.GROUP, name, [member_account_id])
    except Exception:
        logger.exception("Failed to create group chat %r for coach %s", name, coach_id)


async def create_session_event(
    db: AsyncSession,
    coach_id: int,
    member_account_id: int,
    member_name: str,
    scheduled_at: datetime,
    duration: int,
    notes: str | None,
) -> CalendarEvent:
    try:
        return await create_event(
            db,
            creator_id=coach_id,
            title=f"Coaching Session: {member_name}",
            description=notes or "Coaching session",
            start_time=scheduled_at,
            end_time=scheduled_at + timedelta(minutes=duration),
            attendee_ids=[member_account_id],
            visibility=EventVisibility.PRIVATE,
        )
    except Exception as exc:
        raise CollaboratorFailure("calendar", str(exc)) from exc


async def sync_session_event(db: AsyncSession, event_id: int, **patch) -> None:
    try:
        await update_event(db, event_id, **patch)
    except Exception as exc:
        raise CollaboratorFailure("calendar", str(exc)) from exc
