"""Booking allocation.

create_booking reserves one unit of a slot's capacity and creates the coaching
session behind it. The capacity re-count and the inserts happen in one critical
section per (coach, date, time):

- an in-process asyncio.Lock keyed on the slot, so a worker only runs one
  allocation per slot at a time, and
- SELECT ... FOR UPDATE on the availability window row, so allocators in other
  workers queue behind the open transaction (PostgreSQL; SQLite takes a database
  write lock instead).

The transaction commits before the lock is released. Notifications go out after.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import date, time

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.models.booking import Booking, BookingStatus
from app.models.member import AccountId, MemberProfile, UserRole
from app.models.notification import NotificationPriority
from app.models.session import SessionStatus, SessionType
from app.services.capacity import as_local, count_active_bookings, find_window, normalize_time, slot_start
from app.services.dispatch import notify
from app.services.errors import Forbidden, InvalidSlot, InvalidTransition, NotFound, SlotBusy, SlotFull
from app.services.permissions import CallerContext, can_view, resolve_member_profile
from app.services.sessions import (
    DEFAULT_CANCELLATION_REASON,
    after_session_cancelled,
    announce_session,
    find_session,
    insert_session,
    mark_session_cancelled,
    validate_parties,
)

logger = logging.getLogger(__name__)

_slot_locks: "weakref.WeakValueDictionary[tuple[int, date, str], asyncio.Lock]" = weakref.WeakValueDictionary()


def _slot_lock(coach_id: int, on_date: date, at_time: str) -> asyncio.Lock:
    key = (coach_id, on_date, at_time)
    lock = _slot_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _slot_locks[key] = lock
    return lock


@asynccontextmanager
async def hold_slot(coach_id: int, on_date: date, at_time: str):
    """Single writer per slot within this process. Raises SlotBusy if the wait times out."""
    lock = _slot_lock(coach_id, on_date, at_time)
    try:
        async with asyncio.timeout(settings.slot_lock_timeout_seconds):
            await lock.acquire()
    except TimeoutError:
        raise SlotBusy("This slot is busy right now, please try again") from None
    try:
        yield
    finally:
        lock.release()


def _with_relations(stmt: Select) -> Select:
    return stmt.options(
        selectinload(Booking.coach),
        selectinload(Booking.member).joinedload(MemberProfile.user),
        selectinload(Booking.session),
    )


async def _load_booking(db: AsyncSession, booking_id: int) -> Booking:
    result = await db.execute(
        _with_relations(select(Booking).where(Booking.id == booking_id)).execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFound("Booking not found")
    return booking


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------


async def create_booking(
    db: AsyncSession,
    coach_id: int,
    member_account_id: AccountId,
    requested_date: date,
    requested_time: str | time,
    duration: int,
    member_notes: str | None = None,
    create_group_chat: bool = False,
) -> Booking:
    """Book a slot for a member (identified by account id) and auto-confirm it.

    Raises NotFound, InvalidSlot, SlotFull (after notifying the member) or SlotBusy.
    Not idempotent: every successful call creates a new booking and session.
    """
    at_time = normalize_time(requested_time)

    try:
        member_id = await resolve_member_profile(db, member_account_id)
    except NotFound:
        logger.warning("Booking rejected: account %s has no member profile", member_account_id)
        raise NotFound("Member not found") from None
    coach, member = await validate_parties(db, coach_id, member_id)

    scheduled_at = slot_start(requested_date, at_time)
    if await find_window(db, coach_id, requested_date, at_time) is None:
        raise InvalidSlot("The requested time is outside coach availability")

    try:
        async with hold_slot(coach_id, requested_date, at_time):
            try:
                window = await find_window(db, coach_id, requested_date, at_time, lock=True)
                if window is None:
                    raise InvalidSlot("The requested time is outside coach availability")

                taken = await count_active_bookings(db, coach_id, requested_date, at_time)
                if taken >= window.max_sessions_per_slot:
                    raise SlotFull("This slot is now full, please choose another")

                session = await insert_session(
                    db, coach, member, scheduled_at, duration, SessionType.REGULAR, member_notes
                )
                booking = Booking(
                    coach_id=coach_id,
                    member_id=member_id,
                    requested_date=requested_date,
                    requested_time=at_time,
                    duration=duration,
                    member_notes=member_notes,
                    status=BookingStatus.CONFIRMED,
                    session_id=session.id,
                )
                db.add(booking)
                await db.flush()
                await db.commit()
            except Exception:
                await db.rollback()
                raise
    except SlotFull:
        logger.info("Slot full: coach=%s %s %s (member account %s)", coach_id, requested_date, at_time, member_account_id)
        await notify(
            user_id=member_account_id,
            title="Booking Rejected",
            message="This slot is now full, please choose another",
            priority=NotificationPriority.HIGH,
            action_url="/member/book-session",
            action_label="Book Another Slot",
        )
        raise

    logger.info(
        "Booking %s confirmed: coach=%s member=%s %s %s (session %s)",
        booking.id,
        coach_id,
        member_id,
        requested_date,
        at_time,
        session.id,
    )

    await announce_session(coach, member, session, create_group_chat)
    await notify(
        user_id=member.user_id,
        title="Booking Confirmed",
        message=(
            f"Your coaching session with {coach.display_name} has been confirmed for "
            f"{as_local(scheduled_at).strftime('%a %d %b %Y')} at {at_time}"
        ),
        action_url=f"/member/sessions/{session.id}",
        action_label="View Session",
    )
    return await _load_booking(db, booking.id)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def find_booking(db: AsyncSession, booking_id: int, caller: CallerContext) -> Booking:
    booking = await _load_booking(db, booking_id)
    if not can_view(caller, booking.coach_id, booking.member_id):
        raise Forbidden("You can only view your own bookings")
    return booking


async def list_bookings(db: AsyncSession, caller: CallerContext) -> list[Booking]:
    """Coach: own bookings. Member: own bookings (none if no profile). Admin: all. Newest first."""
    stmt = select(Booking)
    if caller.role == UserRole.COACH:
        stmt = stmt.where(Booking.coach_id == caller.account_id)
    elif caller.role == UserRole.MEMBER:
        if caller.member_profile_id is None:
            return []
        stmt = stmt.where(Booking.member_id == caller.member_profile_id)

    result = await db.execute(_with_relations(stmt.order_by(Booking.created_at.desc(), Booking.id.desc())))
    return list(result.scalars().all())


async def list_pending_bookings(db: AsyncSession, coach_id: int, caller: CallerContext) -> list[Booking]:
    if caller.role == UserRole.MEMBER or (caller.role == UserRole.COACH and caller.account_id != coach_id):
        raise Forbidden("You can only view your own pending bookings")

    result = await db.execute(
        _with_relations(
            select(Booking)
            .where(Booking.coach_id == coach_id, Booking.status == BookingStatus.PENDING)
            .order_by(Booking.requested_date.asc(), Booking.requested_time.asc())
        )
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    caller: CallerContext,
    reason: str | None = None,
) -> None:
    """Cancel a booking and, through it, the linked session.

    Cancellation always flows booking -> session. The session gets the caller's
    reason or "Booking cancelled". Both rows change in one transaction.
    """
    booking = await find_booking(db, booking_id, caller)
    if booking.status == BookingStatus.CANCELLED:
        raise InvalidTransition("Booking is already cancelled")

    session = await find_session(db, booking.session_id, caller) if booking.session_id is not None else None
    session_reason = reason or DEFAULT_CANCELLATION_REASON
    cascade = session is not None and session.status != SessionStatus.CANCELLED

    try:
        result = await db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status != BookingStatus.CANCELLED)
            .values(status=BookingStatus.CANCELLED)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount == 0:
            raise InvalidTransition("Booking is already cancelled")
        if cascade:
            await mark_session_cancelled(db, session, session_reason)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Booking %s cancelled by user %s", booking.id, caller.account_id)

    # Who hears about it: the coach when the member cancels, the member otherwise
    when = f"{booking.requested_date.strftime('%a %d %b %Y')} at {booking.requested_time}"
    if caller.role == UserRole.MEMBER:
        recipient = booking.coach_id
        message = f"{booking.member.user.display_name} has cancelled their booking for {when}"
    else:
        recipient = booking.member.user_id
        message = f"Your booking for {when} has been cancelled"

    if cascade:
        await after_session_cancelled(db, session, session_reason)
    await notify(
        user_id=recipient,
        title="Booking Cancelled",
        message=message,
        priority=NotificationPriority.HIGH,
    )
