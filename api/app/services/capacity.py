"""Slot capacity: availability window lookup and active booking counts.

A slot is one (coach, date, "HH:MM") tuple. Its capacity is the matching window's
max_sessions_per_slot minus the confirmed/pending bookings at exactly that tuple.
Nothing here is cached; the allocator re-runs the count inside its transaction.
"""

from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.availability import CoachAvailability
from app.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from app.services.errors import InvalidSlot

TIME_FORMAT = "%H:%M"


def normalize_time(value: str | time) -> str:
    """Return a zero-padded "HH:MM" string. Raises InvalidSlot for anything unparseable."""
    if isinstance(value, time):
        return value.strftime(TIME_FORMAT)
    try:
        return datetime.strptime(value.strip(), TIME_FORMAT).strftime(TIME_FORMAT)
    except ValueError:
        raise InvalidSlot(f"Invalid time {value!r}, expected HH:MM", rule="invalid_time") from None


def to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def from_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_of_week(on_date: date) -> int:
    """0 = Sunday ... 6 = Saturday, the numbering availability windows use."""
    return on_date.isoweekday() % 7


def slot_start(on_date: date, at_time: str) -> datetime:
    """Combine a slot's date and wall-clock time (booking timezone) into an aware UTC datetime."""
    hours, minutes = (int(p) for p in at_time.split(":"))
    return datetime.combine(on_date, time(hours, minutes), tzinfo=settings.tz).astimezone(UTC)


def as_utc(value: datetime) -> datetime:
    """Normalize a client-supplied datetime to UTC. Naive values are read in the booking timezone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=settings.tz)
    return value.astimezone(UTC)


def as_local(value: datetime) -> datetime:
    """Stored timestamps (naive means UTC) converted to the booking timezone for display."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(settings.tz)


async def find_window(
    db: AsyncSession,
    coach_id: int,
    on_date: date,
    at_time: str,
    lock: bool = False,
) -> CoachAvailability | None:
    """First active window for the coach on that weekday whose [start, end) contains at_time.

    With lock=True the window row is selected FOR UPDATE, which serializes
    allocators for the window across processes until the transaction ends.
    """
    stmt = (
        select(CoachAvailability)
        .where(
            CoachAvailability.coach_id == coach_id,
            CoachAvailability.day_of_week == day_of_week(on_date),
            CoachAvailability.is_active.is_(True),
            CoachAvailability.start_time <= at_time,
            CoachAvailability.end_time > at_time,
        )
        .order_by(CoachAvailability.start_time)
        .limit(1)
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def count_active_bookings(db: AsyncSession, coach_id: int, on_date: date, at_time: str) -> int:
    """Confirmed and pending bookings at exactly (coach, date, time)."""
    result = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.coach_id == coach_id,
            Booking.requested_date == on_date,
            Booking.requested_time == at_time,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
    )
    return result.scalar_one()


async def check_slot_capacity(db: AsyncSession, coach_id: int, on_date: date, at_time: str | time) -> int:
    """Remaining capacity for a slot.

    0 when no active window covers the time. May be negative if the slot has been
    overbooked, so treat anything <= 0 as full.
    """
    at_time = normalize_time(at_time)
    window = await find_window(db, coach_id, on_date, at_time)
    if window is None:
        return 0
    count = await count_active_bookings(db, coach_id, on_date, at_time)
    return window.max_sessions_per_slot - count


def generate_time_slots(start_time: str, end_time: str, duration: int, buffer_minutes: int) -> list[str]:
    """Slot start times inside a window, spaced by duration + buffer, each fitting before end_time.

    "09:00"-"11:00", 60 min, 15 buffer -> ["09:00"]  (09:00-10:00, next would start 10:15 and overrun)
    """
    start = to_minutes(start_time)
    end = to_minutes(end_time)
    step = duration + buffer_minutes
    slots = []
    current = start
    while current + duration <= end:
        slots.append(from_minutes(current))
        current += step
    return slots


async def list_available_slots(
    db: AsyncSession,
    coach_id: int,
    start_date: date,
    end_date: date,
    duration: int = 60,
) -> list[dict]:
    """All bookable slots for a coach between two dates (inclusive).

    Returns dicts with keys: date, time, available_capacity, max_capacity. Slots in
    the past and slots with no remaining capacity are left out. Bookings count
    against every slot they overlap (half-open, buffer included).
    """
    windows_result = await db.execute(
        select(CoachAvailability)
        .where(CoachAvailability.coach_id == coach_id, CoachAvailability.is_active.is_(True))
        .order_by(CoachAvailability.day_of_week, CoachAvailability.start_time)
    )
    windows = windows_result.scalars().all()
    if not windows or end_date < start_date:
        return []

    bookings_result = await db.execute(
        select(Booking.requested_date, Booking.requested_time, Booking.duration).where(
            Booking.coach_id == coach_id,
            Booking.requested_date >= start_date,
            Booking.requested_date <= end_date,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
    )
    booked: dict[date, list[tuple[int, int]]] = {}
    for booked_date, booked_time, booked_duration in bookings_result.all():
        b_start = to_minutes(booked_time)
        booked.setdefault(booked_date, []).append((b_start, b_start + booked_duration))

    now = datetime.now(UTC)
    slots: list[dict] = []
    current = start_date
    while current <= end_date:
        for window in (w for w in windows if w.day_of_week == day_of_week(current)):
            for slot_time in generate_time_slots(window.start_time, window.end_time, duration, window.buffer_minutes):
                if slot_start(current, slot_time) <= now:
                    continue
                s_start = to_minutes(slot_time)
                s_end = s_start + duration + window.buffer_minutes
                taken = sum(1 for b_start, b_end in booked.get(current, []) if b_start < s_end and b_end > s_start)
                remaining = window.max_sessions_per_slot - taken
                if remaining > 0:
                    slots.append(
                        {
                            "date": current,
                            "time": slot_time,
                            "available_capacity": remaining,
                            "max_capacity": window.max_sessions_per_slot,
                        }
                    )
        current += timedelta(days=1)

    return slots
