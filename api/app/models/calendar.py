"""Calendar event model.

Owned by the calendar module. Coaching sessions hold a reference to their event and
forward reschedules and cancellations to it.
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class EventVisibility(enum.StrEnum):
    PUBLIC = "public"
    PRIVATE = "private"


class EventStatus(enum.StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class CalendarEvent(TimestampMixin, Base):
    __tablename__ = "calendar_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Account ids (never member profile ids)
    attendee_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    visibility: Mapped[EventVisibility] = mapped_column(
        Enum(EventVisibility, name="event_visibility", values_callable=lambda e: [x.value for x in e]),
        default=EventVisibility.PUBLIC,
        nullable=False,
    )
    status: Mapped[EventStatus] = mapped_column(
        Enum(EventStatus, name="event_status", values_callable=lambda e: [x.value for x in e]),
        default=EventStatus.CONFIRMED,
        nullable=False,
    )

    __table_args__ = (Index("ix_events_creator_start", "creator_id", "start_time"),)

    def __repr__(self) -> str:
        return f"<CalendarEvent {self.title!r} {self.start_time}>"
