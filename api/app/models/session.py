"""Coaching session model.

The session is the appointment itself. It starts scheduled and ends either
completed or cancelled; neither terminal state can be left. A rating can be
written once, after completion.
"""

import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Index, SmallInteger, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


class SessionStatus(enum.StrEnum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_SESSION_STATUSES = (SessionStatus.COMPLETED, SessionStatus.CANCELLED)


class SessionType(enum.StrEnum):
    INITIAL = "initial"
    REGULAR = "regular"
    FOLLOW_UP = "follow_up"


class CoachingSession(TimestampMixin, Base):
    __tablename__ = "coaching_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    coach_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    member_id: Mapped[int] = mapped_column(ForeignKey("member_profiles.id"), nullable=False)
    calendar_event_id: Mapped[int] = mapped_column(ForeignKey("calendar_events.id"), nullable=False)

    type: Mapped[SessionType] = mapped_column(
        Enum(SessionType, name="session_type", values_callable=lambda e: [x.value for x in e]),
        default=SessionType.REGULAR,
        nullable=False,
    )
    duration: Mapped[int] = mapped_column(nullable=False)  # minutes
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, name="session_status", values_callable=lambda e: [x.value for x in e]),
        default=SessionStatus.SCHEDULED,
        nullable=False,
    )

    # Notes and outcomes
    coach_notes: Mapped[str | None] = mapped_column(Text)  # coach and admin only
    member_notes: Mapped[str | None] = mapped_column(Text)
    outcomes: Mapped[str | None] = mapped_column(Text)

    # Terminal bookkeeping
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    # Member feedback, write-once
    rating: Mapped[int | None] = mapped_column(SmallInteger)
    rating_feedback: Mapped[str | None] = mapped_column(Text)

    # Relationships
    coach: Mapped["User"] = relationship()
    member: Mapped["MemberProfile"] = relationship()
    calendar_event: Mapped["CalendarEvent"] = relationship()

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating BETWEEN 1 AND 5)", name="ck_session_rating"),
        Index("ix_sessions_coach_time", "coach_id", "scheduled_at"),
        Index("ix_sessions_member_time", "member_id", "scheduled_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SESSION_STATUSES

    def __repr__(self) -> str:
        return f"<CoachingSession {self.id} {self.scheduled_at} {self.status}>"


# Import for type hints
from app.models.calendar import CalendarEvent  # noqa: E402
from app.models.member import MemberProfile, User  # noqa: E402
