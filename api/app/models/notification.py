"""In-app notifications and the conversations opened for group sessions."""

import enum

from sqlalchemy import Boolean, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


class NotificationCategory(enum.StrEnum):
    CALENDAR = "calendar"
    SYSTEM = "system"


class NotificationPriority(enum.StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Notification(TimestampMixin, Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[NotificationCategory] = mapped_column(
        Enum(NotificationCategory, name="notification_category", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )
    priority: Mapped[NotificationPriority] = mapped_column(
        Enum(NotificationPriority, name="notification_priority", values_callable=lambda e: [x.value for x in e]),
        default=NotificationPriority.NORMAL,
        nullable=False,
    )
    action_url: Mapped[str | None] = mapped_column(String(500))
    action_label: Mapped[str | None] = mapped_column(String(100))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (Index("ix_notifications_user_read", "user_id", "is_read"),)

    def __repr__(self) -> str:
        return f"<Notification {self.title!r} user={self.user_id}>"


class ConversationType(enum.StrEnum):
    DIRECT = "direct"
    GROUP = "group"


class Conversation(TimestampMixin, Base):
    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[ConversationType] = mapped_column(
        Enum(ConversationType, name="conversation_type", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(String(200))
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    participants: Mapped[list["ConversationParticipant"]] = relationship(
        back_populates="conversation", lazy="selectin"
    )


class ConversationParticipant(Base):
    __tablename__ = "conversation_participants"

    conversation_id: Mapped[int] = mapped_column(ForeignKey("conversations.id"), primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)

    conversation: Mapped["Conversation"] = relationship(back_populates="participants")
