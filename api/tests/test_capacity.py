"""Slot capacity: time helpers, window lookup, remaining capacity and slot listing."""

from datetime import date, datetime, time, timedelta

import pytest

from app.core.database import async_session_factory
from app.models import Booking, BookingStatus, CoachAvailability
from app.services.capacity import (
    check_slot_capacity,
    day_of_week,
    generate_time_slots,
    list_available_slots,
    normalize_time,
)
from app.services.errors import InvalidSlot


# ---------------------------------------------------------------------------
# Unit tests: time helpers
# ---------------------------------------------------------------------------


class TestTimeHelpers:
    def test_normalize_pads_hours(self):
        assert normalize_time("9:05") == "09:05"

    def test_normalize_accepts_time(self):
        assert normalize_time(time(14, 30)) == "14:30"

    def test_normalize_rejects_garbage(self):
        with pytest.raises(InvalidSlot) as exc:
            normalize_time("25:00")
        assert exc.value.rule == "invalid_time"

    def test_day_of_week_sunday_is_zero(self):
        assert day_of_week(date(2026, 10, 18)) == 0  # Sunday
        assert day_of_week(date(2026, 10, 19)) == 1  # Monday
        assert day_of_week(date(2026, 10, 24)) == 6  # Saturday


class TestGenerateTimeSlots:
    def test_buffer_pushes_next_slot_past_end(self):
        assert generate_time_slots("09:00", "11:00", 60, 15) == ["09:00"]

    def test_no_buffer(self):
        assert generate_time_slots("09:00", "11:00", 60, 0) == ["09:00", "10:00"]

    def test_short_sessions(self):
        assert generate_time_slots("09:00", "10:00", 30, 0) == ["09:00", "09:30"]

    def test_window_shorter_than_duration(self):
        assert generate_time_slots("09:00", "09:45", 60, 0) == []


# ---------------------------------------------------------------------------
# Integration tests: check_slot_capacity
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_capacity_full_window(practice, slot_day):
    async with async_session_factory() as db:
        assert await check_slot_capacity(db, practice.coach_id, slot_day, "10:00") == 2


@pytest.mark.asyncio
async def test_capacity_zero_without_window(practice, slot_day):
    async with async_session_factory() as db:
        assert await check_slot_capacity(db, practice.other_coach_id, slot_day, "10:00") == 0


@pytest.mark.asyncio
async def test_capacity_window_bounds(practice, slot_day):
    async with async_session_factory() as db:
        assert await check_slot_capacity(db, practice.coach_id, slot_day, "09:00") == 2
        assert await check_slot_capacity(db, practice.coach_id, slot_day, "16:59") == 2
        # End is exclusive
        assert await check_slot_capacity(db, practice.coach_id, slot_day, "17:00") == 0
        assert await check_slot_capacity(db, practice.coach_id, slot_day, "08:59") == 0


@pytest.mark.asyncio
async def test_capacity_follows_weekday(practice, slot_day):
    sunday = slot_day + timedelta(days=(7 - day_of_week(slot_day)) % 7)
    async with async_session_factory() as db:
        db.add(
            CoachAvailability(
                coach_id=practice.other_coach_id,
                day_of_week=0,
                start_time="10:00",
                end_time="12:00",
                max_sessions_per_slot=3,
            )
        )
        await db.commit()

        assert await check_slot_capacity(db, practice.other_coach_id, sunday, "10:00") == 3
        assert await check_slot_capacity(db, practice.other_coach_id, sunday + timedelta(days=1), "10:00") == 0


@pytest.mark.asyncio
async def test_capacity_ignores_inactive_window(practice, slot_day):
    async with async_session_factory() as db:
        db.add(
            CoachAvailability(
                coach_id=practice.other_coach_id,
                day_of_week=day_of_week(slot_day),
                start_time="09:00",
                end_time="12:00",
                max_sessions_per_slot=4,
                is_active=False,
            )
        )
        await db.commit()
        assert await check_slot_capacity(db, practice.other_coach_id, slot_day, "10:00") == 0


@pytest.mark.asyncio
async def test_capacity_decrements_per_booking(practice, slot_day, book):
    member = practice.members[0]
    await book(member, "10:00")

    async with async_session_factory() as db:
        assert await check_slot_capacity(db, practice.coach_id, slot_day, "10:00") == 1
        # Other times on the same day are untouched
        assert await check_slot_capacity(db, practice.coach_id, slot_day, "11:00") == 2
        assert await check_slot_capacity(db, practice.coach_id, slot_day + timedelta(days=7), "10:00") == 2


@pytest.mark.asyncio
async def test_capacity_counts_pending_not_cancelled(practice, slot_day):
    member = practice.members[0]
    async with async_session_factory() as db:
        for status in (BookingStatus.PENDING, BookingStatus.CANCELLED, BookingStatus.CANCELLED):
            db.add(
                Booking(
                    coach_id=practice.coach_id,
                    member_id=member.profile_id,
                    requested_date=slot_day,
                    requested_time="10:00",
                    duration=60,
                    status=status,
                )
            )
        await db.commit()

        assert await check_slot_capacity(db, practice.coach_id, slot_day, "10:00") == 1


@pytest.mark.asyncio
async def test_capacity_can_go_negative(practice, slot_day):
    """Rows written around the allocator still count; callers treat <= 0 as full."""
    member = practice.members[0]
    async with async_session_factory() as db:
        for _ in range(3):
            db.add(
                Booking(
                    coach_id=practice.coach_id,
                    member_id=member.profile_id,
                    requested_date=slot_day,
                    requested_time="10:00",
                    duration=60,
                    status=BookingStatus.CONFIRMED,
                )
            )
        await db.commit()

        assert await check_slot_capacity(db, practice.coach_id, slot_day, "10:00") == -1


# ---------------------------------------------------------------------------
# Integration tests: list_available_slots
# ---------------------------------------------------------------------------


@pytest.fixture
async def short_window(practice, slot_day):
    """Other coach: 09:00-11:00 on slot_day's weekday, one per slot, no buffer."""
    async with async_session_factory() as db:
        db.add(
            CoachAvailability(
                coach_id=practice.other_coach_id,
                day_of_week=day_of_week(slot_day),
                start_time="09:00",
                end_time="11:00",
                max_sessions_per_slot=1,
                buffer_minutes=0,
            )
        )
        await db.commit()


@pytest.mark.asyncio
async def test_slots_for_one_day(practice, slot_day, short_window):
    async with async_session_factory() as db:
        slots = await list_available_slots(db, practice.other_coach_id, slot_day, slot_day)

    assert [s["time"] for s in slots] == ["09:00", "10:00"]
    assert all(s["date"] == slot_day for s in slots)
    assert all(s["available_capacity"] == 1 and s["max_capacity"] == 1 for s in slots)


@pytest.mark.asyncio
async def test_slots_repeat_weekly(practice, slot_day, short_window):
    async with async_session_factory() as db:
        slots = await list_available_slots(db, practice.other_coach_id, slot_day, slot_day + timedelta(days=13))

    assert sorted({s["date"] for s in slots}) == [slot_day, slot_day + timedelta(days=7)]


@pytest.mark.asyncio
async def test_slots_hide_booked_slot(practice, slot_day, short_window):
    member = practice.members[4]
    async with async_session_factory() as db:
        db.add(
            Booking(
                coach_id=practice.other_coach_id,
                member_id=member.profile_id,
                requested_date=slot_day,
                requested_time="09:00",
                duration=60,
                status=BookingStatus.CONFIRMED,
            )
        )
        await db.commit()

        slots = await list_available_slots(db, practice.other_coach_id, slot_day, slot_day)

    assert [s["time"] for s in slots] == ["10:00"]


@pytest.mark.asyncio
async def test_slots_long_booking_blocks_overlapping_slots(practice, slot_day, short_window):
    member = practice.members[4]
    async with async_session_factory() as db:
        db.add(
            Booking(
                coach_id=practice.other_coach_id,
                member_id=member.profile_id,
                requested_date=slot_day,
                requested_time="09:00",
                duration=120,
                status=BookingStatus.CONFIRMED,
            )
        )
        await db.commit()

        assert await list_available_slots(db, practice.other_coach_id, slot_day, slot_day) == []


@pytest.mark.asyncio
async def test_slots_skip_past(practice):
    today = datetime.now().date()
    async with async_session_factory() as db:
        db.add(
            CoachAvailability(
                coach_id=practice.other_coach_id,
                day_of_week=day_of_week(today - timedelta(days=7)),
                start_time="09:00",
                end_time="11:00",
                buffer_minutes=0,
            )
        )
        await db.commit()

        assert await list_available_slots(db, practice.other_coach_id, today - timedelta(days=7), today - timedelta(days=1)) == []


@pytest.mark.asyncio
async def test_slots_empty_without_windows(practice, slot_day):
    async with async_session_factory() as db:
        assert await list_available_slots(db, practice.other_coach_id, slot_day, slot_day + timedelta(days=6)) == []
