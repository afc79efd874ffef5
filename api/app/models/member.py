"""Account and profile models.

User = a person with login credentials. Its id is the account id.
CoachProfile = marks an account as a bookable coach.
MemberProfile = a coached member. Bookings and sessions reference the member by
MemberProfile.id, never by the account id. Coaches are referenced by account id.
"""

import enum
from typing import NewType

from sqlalchemy import Boolean, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

AccountId = NewType("AccountId", int)
MemberProfileId = NewType("MemberProfileId", int)


class UserRole(enum.StrEnum):
    """Platform roles. Every ownership check is keyed on one of these."""

    MEMBER = "member"
    COACH = "coach"
    ADMIN = "admin"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(254), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(200))
    avatar_url: Mapped[str | None] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=lambda e: [x.value for x in e]),
        default=UserRole.MEMBER,
        nullable=False,
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class CoachProfile(TimestampMixin, Base):
    __tablename__ = "coach_profiles"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    bio: Mapped[str | None] = mapped_column(Text)
    specialization: Mapped[str | None] = mapped_column(String(200))

    user: Mapped["User"] = relationship()

    def __repr__(self) -> str:
        return f"<CoachProfile user={self.user_id}>"


class MemberProfile(TimestampMixin, Base):
    __tablename__ = "member_profiles"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    # Assigned coach (account id). Coaches may list sessions only for their own members.
    coach_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    goals: Mapped[str | None] = mapped_column(Text)

    user: Mapped["User"] = relationship(foreign_keys=[user_id], lazy="joined")

    def __repr__(self) -> str:
        return f"<MemberProfile {self.id} user={self.user_id}>"
