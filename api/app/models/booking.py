"""Booking model.

A booking is the reservation a member holds against a coach's slot: one
(coach, date, time) tuple. Bookings are created already confirmed and linked to the
coaching session created alongside them. They are cancelled, never deleted.
"""

import enum
from datetime import date

from sqlalchemy import Date, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


class BookingStatus(enum.StrEnum):
    PENDING = "pending"  # occupies capacity; not produced by the booking flow today
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# Statuses that occupy a slot
ACTIVE_BOOKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.PENDING)


class Booking(TimestampMixin, Base):
    __tablename__ = "session_bookings"

    id: Mapped[int] = mapped_column(primary_key=True)
    coach_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    member_id: Mapped[int] = mapped_column(ForeignKey("member_profiles.id"), nullable=False)

    # When: date-only plus an "HH:MM" wall-clock time that must sit inside a window
    requested_date: Mapped[date] = mapped_column(Date, nullable=False)
    requested_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration: Mapped[int] = mapped_column(nullable=False)  # minutes

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status", values_callable=lambda e: [x.value for x in e]),
        default=BookingStatus.CONFIRMED,
        nullable=False,
    )
    member_notes: Mapped[str | None] = mapped_column(Text)
    session_id: Mapped[int | None] = mapped_column(ForeignKey("coaching_sessions.id"))

    # Relationships
    coach: Mapped["User"] = relationship()
    member: Mapped["MemberProfile"] = relationship()
    session: Mapped["CoachingSession"] = relationship()

    __table_args__ = (
        # The capacity count hits exactly this tuple
        Index("ix_bookings_slot", "coach_id", "requested_date", "requested_time"),
        Index("ix_bookings_member", "member_id", "requested_date"),
    )

    def __repr__(self) -> str:
        return f"<Booking {self.requested_date} {self.requested_time} coach={self.coach_id} {self.status}>"


# Import for type hints
from app.models.member import MemberProfile, User  # noqa: E402
from app.models.session import CoachingSession  # noqa: E402
