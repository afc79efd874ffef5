"""Coach availability windows.

A window is a recurring weekly range ("HH:MM" strings, half-open) during which a
coach accepts bookings. Windows are authored by the coach dashboard; the booking
engine only reads them.
"""

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class CoachAvailability(TimestampMixin, Base):
    __tablename__ = "coach_availability"

    id: Mapped[int] = mapped_column(primary_key=True)
    coach_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    # 0 = Sunday ... 6 = Saturday
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM, exclusive

    max_sessions_per_slot: Mapped[int] = mapped_column(default=1, nullable=False)
    buffer_minutes: Mapped[int] = mapped_column(default=15, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_day"),
        CheckConstraint("max_sessions_per_slot > 0", name="ck_availability_capacity"),
        Index("ix_availability_coach_day", "coach_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return f"<CoachAvailability coach={self.coach_id} day={self.day_of_week} {self.start_time}-{self.end_time}>"
