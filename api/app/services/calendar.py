"""Calendar collaborator.

Events are written through the caller's session so that a coaching session and its
backing event commit or roll back together.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.calendar import CalendarEvent, EventStatus, EventVisibility

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"title", "description", "start_time", "end_time", "status", "visibility"}


async def create_event(
    db: AsyncSession,
    creator_id: int,
    title: str,
    start_time: datetime,
    end_time: datetime,
    attendee_ids: list[int],
    description: str | None = None,
    visibility: EventVisibility = EventVisibility.PRIVATE,
) -> CalendarEvent:
    """Create an event owned by creator_id. Attendees are account ids; the creator is not listed."""
    if end_time < start_time:
        raise ValueError("Event end time must be after start time")

    event = CalendarEvent(
        creator_id=creator_id,
        title=title,
        description=description,
        start_time=start_time,
        end_time=end_time,
        attendee_ids=sorted({a for a in attendee_ids if a != creator_id}),
        visibility=visibility,
        status=EventStatus.CONFIRMED,
    )
    db.add(event)
    await db.flush()
    logger.info("Calendar event %s created for user %s", event.id, creator_id)
    return event


async def update_event(db: AsyncSession, event_id: int, **patch) -> None:
    """Apply a partial update to an event. Unknown fields raise ValueError."""
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update event fields: {', '.join(sorted(unknown))}")

    event = await db.get(CalendarEvent, event_id)
    if event is None:
        raise LookupError(f"Calendar event {event_id} not found")

    if "start_time" in patch and "end_time" in patch and patch["end_time"] < patch["start_time"]:
        raise ValueError("Event end time must be after start time")

    for field, value in patch.items():
        setattr(event, field, value)
    await db.flush()
