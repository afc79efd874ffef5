"""Pydantic schemas for API serialisation."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.session import SessionType

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


# --- Parties ---


class PartyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str | None
    email: str
    avatar_url: str | None


class MemberOut(BaseModel):
    """A member as bookings and sessions reference them: by profile id, with the account attached."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    user: PartyOut


# --- Sessions ---


class SessionCreate(BaseModel):
    coach_id: int
    member_id: int  # member profile id
    scheduled_at: datetime
    duration: int = Field(60, gt=0, le=480)
    type: SessionType = SessionType.REGULAR
    member_notes: str | None = None
    create_group_chat: bool = False


class SessionUpdate(BaseModel):
    scheduled_at: datetime | None = None
    duration: int | None = Field(None, gt=0, le=480)
    type: SessionType | None = None
    member_notes: str | None = None


class SessionComplete(BaseModel):
    coach_notes: str | None = None
    outcomes: str | None = None


class SessionCancel(BaseModel):
    reason: str | None = None


class NotesIn(BaseModel):
    notes: str


class RatingIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: str | None = None


class CalendarEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    start_time: datetime
    end_time: datetime
    status: str


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coach_id: int
    member_id: int
    calendar_event_id: int
    type: str
    duration: int
    scheduled_at: datetime
    status: str
    coach_notes: str | None
    member_notes: str | None
    outcomes: str | None
    cancellation_reason: str | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    rating: int | None
    rating_feedback: str | None
    created_at: datetime
    coach: PartyOut
    member: MemberOut
    calendar_event: CalendarEventOut


# --- Bookings ---


class BookingCreate(BaseModel):
    coach_id: int
    member_id: int | None = None  # member ACCOUNT id; members book for themselves
    requested_date: date
    requested_time: str = Field(..., pattern=HHMM_PATTERN)
    duration: int = Field(60, gt=0, le=480)
    member_notes: str | None = None
    create_group_chat: bool = False


class BookingCancel(BaseModel):
    reason: str | None = None


class BookingSessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    scheduled_at: datetime


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coach_id: int
    member_id: int
    requested_date: date
    requested_time: str
    duration: int
    status: str
    member_notes: str | None
    session_id: int | None
    created_at: datetime
    coach: PartyOut
    member: MemberOut
    session: BookingSessionOut | None


# --- Availability ---


class CapacityOut(BaseModel):
    coach_id: int
    date: date
    time: str
    remaining_capacity: int


class AvailableSlotOut(BaseModel):
    date: date
    time: str  # "HH:MM"
    available_capacity: int
    max_capacity: int
