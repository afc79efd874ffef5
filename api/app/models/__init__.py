"""All models imported here for Alembic autogenerate discovery."""

from app.models.base import Base
from app.models.availability import CoachAvailability
from app.models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from app.models.calendar import CalendarEvent, EventStatus, EventVisibility
from app.models.member import AccountId, CoachProfile, MemberProfile, MemberProfileId, User, UserRole
from app.models.notification import (
    Conversation,
    ConversationParticipant,
    ConversationType,
    Notification,
    NotificationCategory,
    NotificationPriority,
)
from app.models.session import CoachingSession, SessionStatus, SessionType

__all__ = [
    "Base",
    "AccountId",
    "MemberProfileId",
    "User",
    "UserRole",
    "CoachProfile",
    "MemberProfile",
    "CoachAvailability",
    "Booking",
    "BookingStatus",
    "ACTIVE_BOOKING_STATUSES",
    "CoachingSession",
    "SessionStatus",
    "SessionType",
    "CalendarEvent",
    "EventStatus",
    "EventVisibility",
    "Notification",
    "NotificationCategory",
    "NotificationPriority",
    "Conversation",
    "ConversationParticipant",
    "ConversationType",
]
