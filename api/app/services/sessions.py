"""Coaching session lifecycle.

    scheduled ──complete──▶ completed ──rate (once)──▶ completed + rating
        │
        └──────cancel─────▶ cancelled

Each operation loads the session, checks the caller against it, applies the
transition as a single conditional UPDATE (so two racing transitions cannot both
win), commits, and only then dispatches notifications.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.models.calendar import EventStatus
from app.models.member import CoachProfile, MemberProfile, MemberProfileId, User, UserRole
from app.models.notification import NotificationCategory, NotificationPriority
from app.models.session import CoachingSession, SessionStatus, SessionType
from app.services.capacity import as_local, as_utc, find_window
from app.services.dispatch import create_session_event, notify, notify_all, open_group_chat, sync_session_event
from app.services.errors import CollaboratorFailure, EngineError, Forbidden, InvalidSlot, InvalidTransition, NotFound
from app.services.permissions import CallerContext, can_act_as_coach, can_act_as_member, can_view

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "Booking cancelled"


def _with_relations(stmt: Select) -> Select:
    return stmt.options(
        selectinload(CoachingSession.coach),
        selectinload(CoachingSession.member).joinedload(MemberProfile.user),
        selectinload(CoachingSession.calendar_event),
    )


async def _load_session(db: AsyncSession, session_id: int) -> CoachingSession:
    result = await db.execute(
        _with_relations(select(CoachingSession).where(CoachingSession.id == session_id)).execution_options(
            populate_existing=True
        )
    )
    session = result.scalar_one_or_none()
    if session is None:
        raise NotFound("Session not found")
    return session


def _fmt_day(value: datetime) -> str:
    return as_local(value).strftime("%a %d %b %Y")


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def validate_parties(db: AsyncSession, coach_id: int, member_id: MemberProfileId) -> tuple[User, MemberProfile]:
    """Coach = account id with a CoachProfile. Member = MemberProfile id (not the account id)."""
    coach = await db.get(User, coach_id)
    coach_profile = await db.execute(select(CoachProfile.id).where(CoachProfile.user_id == coach_id))
    if coach is None or coach_profile.scalar_one_or_none() is None:
        raise NotFound("Coach not found")

    result = await db.execute(
        select(MemberProfile).options(joinedload(MemberProfile.user)).where(MemberProfile.id == member_id)
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise NotFound("Member not found")
    return coach, member


async def insert_session(
    db: AsyncSession,
    coach: User,
    member: MemberProfile,
    scheduled_at: datetime,
    duration: int,
    session_type: SessionType = SessionType.REGULAR,
    member_notes: str | None = None,
) -> CoachingSession:
    """Create the calendar event and the scheduled session row in the caller's transaction.

    Does not commit. A calendar failure raises CollaboratorFailure and leaves nothing behind
    once the transaction is rolled back.
    """
    event = await create_session_event(
        db,
        coach_id=coach.id,
        member_account_id=member.user_id,
        member_name=member.user.display_name,
        scheduled_at=scheduled_at,
        duration=duration,
        notes=member_notes,
    )
    session = CoachingSession(
        calendar_event_id=event.id,
        coach_id=coach.id,
        member_id=member.id,
        type=session_type,
        duration=duration,
        scheduled_at=scheduled_at,
        member_notes=member_notes,
        status=SessionStatus.SCHEDULED,
    )
    db.add(session)
    await db.flush()
    return session


async def announce_session(
    coach: User,
    member: MemberProfile,
    session: CoachingSession,
    create_group_chat: bool = False,
) -> None:
    """Post-commit side effects of a new session. Never raises."""
    day = _fmt_day(session.scheduled_at)
    await notify_all(
        {
            "user_id": coach.id,
            "title": "New Coaching Session",
            "message": f"You have a new coaching session scheduled with {member.user.display_name} on {day}",
            "action_url": f"/dashboard/coaching/sessions/{session.id}",
            "action_label": "View Session",
        },
        {
            "user_id": member.user_id,
            "title": "Coaching Session Scheduled",
            "message": f"Your coaching session with {coach.display_name} is scheduled for {day}",
            "action_url": f"/member/sessions/{session.id}",
            "action_label": "View Session",
        },
    )
    if create_group_chat:
        await open_group_chat(coach.id, member.user_id, f"Session: {day}")


async def create_session(
    db: AsyncSession,
    caller: CallerContext,
    coach_id: int,
    member_id: MemberProfileId,
    scheduled_at: datetime,
    duration: int,
    session_type: SessionType = SessionType.REGULAR,
    member_notes: str | None = None,
    create_group_chat: bool = False,
) -> CoachingSession:
    """Schedule a session directly (coach or admin), without going through a booking."""
    if not can_act_as_coach(caller, coach_id):
        raise Forbidden("Only the coach or an admin can schedule sessions for this coach")

    coach, member = await validate_parties(db, coach_id, member_id)
    scheduled_at = as_utc(scheduled_at)
    local = as_local(scheduled_at)
    if await find_window(db, coach_id, local.date(), local.strftime("%H:%M")) is None:
        raise InvalidSlot("The requested time is outside coach availability")

    session = await insert_session(db, coach, member, scheduled_at, duration, session_type, member_notes)
    await db.commit()
    logger.info("Session %s scheduled: coach=%s member=%s at %s", session.id, coach.id, member.id, scheduled_at)

    await announce_session(coach, member, session, create_group_chat)
    return await _load_session(db, session.id)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def find_session(db: AsyncSession, session_id: int, caller: CallerContext) -> CoachingSession:
    session = await _load_session(db, session_id)
    if not can_view(caller, session.coach_id, session.member_id):
        raise Forbidden("You can only view your own sessions")
    return session


def _scoped(stmt: Select, caller: CallerContext) -> Select | None:
    """Restrict a session query to what the caller owns. None means the caller owns nothing."""
    if caller.role == UserRole.COACH:
        return stmt.where(CoachingSession.coach_id == caller.account_id)
    if caller.role == UserRole.MEMBER:
        if caller.member_profile_id is None:
            return None
        return stmt.where(CoachingSession.member_id == caller.member_profile_id)
    return stmt


async def _fetch(db: AsyncSession, stmt: Select | None, *order_by) -> list[CoachingSession]:
    if stmt is None:
        return []
    result = await db.execute(_with_relations(stmt.order_by(*order_by)))
    return list(result.scalars().all())


async def list_sessions(db: AsyncSession, caller: CallerContext) -> list[CoachingSession]:
    """Non-cancelled sessions the caller can see, newest first."""
    stmt = select(CoachingSession).where(CoachingSession.status != SessionStatus.CANCELLED)
    return await _fetch(db, _scoped(stmt, caller), CoachingSession.scheduled_at.desc())


async def list_upcoming_sessions(db: AsyncSession, caller: CallerContext) -> list[CoachingSession]:
    stmt = select(CoachingSession).where(
        CoachingSession.status == SessionStatus.SCHEDULED,
        CoachingSession.scheduled_at >= datetime.now(UTC),
    )
    return await _fetch(db, _scoped(stmt, caller), CoachingSession.scheduled_at.asc())

async def list_sessions_by_member(
    db: AsyncSession, member_id: MemberProfileId, caller: CallerContext
) -> list[CoachingSession]:
    """All sessions of one member profile. Coaches only see their own sessions with members assigned to them."""
    if caller.role == UserRole.MEMBER and caller.member_profile_id != member_id:
        raise Forbidden("You can only view your own sessions")
    if caller.role == UserRole.COACH:
        result = await db.execute(select(MemberProfile.coach_id).where(MemberProfile.id == member_id))
        if result.scalar_one_or_none() != caller.account_id:
            raise Forbidden("You can only view sessions for your assigned members")

    stmt = select(CoachingSession).where(CoachingSession.member_id == member_id)
    return await _fetch(db, _scoped(stmt, caller), CoachingSession.scheduled_at.desc())


async def list_sessions_by_coach(db: AsyncSession, coach_id: int, caller: CallerContext) -> list[CoachingSession]:
    """All sessions of one coach. Members only see their own sessions with that coach."""
    if caller.role == UserRole.COACH and caller.account_id != coach_id:
        raise Forbidden("You can only view your own sessions")

    stmt = select(CoachingSession).where(CoachingSession.coach_id == coach_id)
    return await _fetch(db, _scoped(stmt, caller), CoachingSession.scheduled_at.desc())


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def _transition(
    db: AsyncSession,
    session: CoachingSession,
    *criteria,
    message: str,
    rule: str | None = None,
    **values,
) -> None:
    """UPDATE the row only if it still matches criteria; otherwise the transition is invalid."""
    result = await db.execute(
        update(CoachingSession)
        .where(CoachingSession.id == session.id, *criteria)
        .values(**values)
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount == 0:
        raise InvalidTransition(message, rule=rule)


async def update_session(
    db: AsyncSession,
    session_id: int,
    caller: CallerContext,
    scheduled_at: datetime | None = None,
    duration: int | None = None,
    session_type: SessionType | None = None,
    member_notes: str | None = None,
) -> CoachingSession:
    """Reschedule, resize or annotate a scheduled session and keep its calendar event in step."""
    session = await find_session(db, session_id, caller)
    if not can_act_as_coach(caller, session.coach_id):
        raise Forbidden("Only the coach can update this session")
    if session.is_terminal:
        raise InvalidTransition(f"Cannot update a {session.status} session")

    values: dict = {}
    if scheduled_at is not None:
        values["scheduled_at"] = as_utc(scheduled_at)
    if duration is not None:
        values["duration"] = duration
    if session_type is not None:
        values["type"] = session_type
    if member_notes is not None:
        values["member_notes"] = member_notes
    if not values:
        return session

    if scheduled_at is not None or duration is not None:
        start = values.get("scheduled_at", session.scheduled_at)
        end = start + timedelta(minutes=values.get("duration", session.duration))
        await sync_session_event(db, session.calendar_event_id, start_time=start, end_time=end)

    await _transition(
        db,
        session,
        CoachingSession.status == SessionStatus.SCHEDULED,
        message=f"Cannot update a {session.status} session",
        **values,
    )
    await db.commit()
    return await _load_session(db, session.id)


async def complete_session(
    db: AsyncSession,
    session_id: int,
    caller: CallerContext,
    coach_notes: str | None = None,
    outcomes: str | None = None,
) -> CoachingSession:
    session = await find_session(db, session_id, caller)
    if not can_act_as_coach(caller, session.coach_id):
        raise Forbidden("Only the coach can complete this session")
    if session.status != SessionStatus.SCHEDULED:
        raise InvalidTransition("Only scheduled sessions can be completed")

    await _transition(
        db,
        session,
        CoachingSession.status == SessionStatus.SCHEDULED,
        message="Only scheduled sessions can be completed",
        status=SessionStatus.COMPLETED,
        completed_at=datetime.now(UTC),
        coach_notes=coach_notes,
        outcomes=outcomes,
    )
    await db.commit()
    logger.info("Session %s completed", session.id)

    member = session.member
    await notify_all(
        {
            "user_id": member.user_id,
            "title": "Session Completed",
            "message": "Your coaching session has been completed. Please rate your experience.",
            "action_url": f"/member/sessions/{session.id}",
            "action_label": "Rate Session",
        },
        {
            "user_id": session.coach_id,
            "title": "Session Completed",
            "message": f"Session with {member.user.display_name} has been marked as completed",
        },
    )
    return await _load_session(db, session.id)


async def mark_session_cancelled(db: AsyncSession, session: CoachingSession, reason: str | None) -> None:
    """Apply the cancel transition in the caller's transaction. Does not commit or notify."""
    if session.status == SessionStatus.COMPLETED:
        raise InvalidTransition("Cannot cancel a completed session")
    await _transition(
        db,
        session,
        CoachingSession.status == SessionStatus.SCHEDULED,
        message=f"Cannot cancel a {session.status} session",
        status=SessionStatus.CANCELLED,
        cancelled_at=datetime.now(UTC),
        cancellation_reason=reason,
    )


async def after_session_cancelled(db: AsyncSession, session: CoachingSession, reason: str | None) -> None:
    """Post-commit side effects of a cancellation. The cancellation itself is already durable."""
    # Read everything up front: a rollback below expires the loaded objects
    session_id, coach_id, event_id = session.id, session.coach_id, session.calendar_event_id
    member_account_id, member_name = session.member.user_id, session.member.user.display_name

    try:
        await sync_session_event(db, event_id, status=EventStatus.CANCELLED)
        await db.commit()
    except CollaboratorFailure:
        await db.rollback()
        logger.exception("Session %s cancelled but its calendar event could not be updated", session_id)

    suffix = f": {reason}" if reason else ""
    await notify_all(
        {
            "user_id": coach_id,
            "title": "Session Cancelled",
            "message": f"Session with {member_name} has been cancelled{suffix}",
            "priority": NotificationPriority.HIGH,
        },
        {
            "user_id": member_account_id,
            "title": "Session Cancelled",
            "message": f"Your coaching session has been cancelled{suffix}",
            "priority": NotificationPriority.HIGH,
        },
    )


async def cancel_session(
    db: AsyncSession,
    session_id: int,
    caller: CallerContext,
    reason: str | None = None,
) -> CoachingSession:
    """Cancel a scheduled session. The coach, the owning member or an admin may cancel."""
    session = await find_session(db, session_id, caller)
    await mark_session_cancelled(db, session, reason)
    await db.commit()
    logger.info("Session %s cancelled by user %s", session.id, caller.account_id)

    await after_session_cancelled(db, session, reason)
    return await _load_session(db, session_id)


# ---------------------------------------------------------------------------
# Notes and rating
# ---------------------------------------------------------------------------


async def add_coach_notes(db: AsyncSession, session_id: int, caller: CallerContext, notes: str) -> CoachingSession:
    session = await find_session(db, session_id, caller)
    if not can_act_as_coach(caller, session.coach_id):
        raise Forbidden("Only the coach can add coach notes")

    session.coach_notes = notes
    await db.commit()
    return await _load_session(db, session.id)


async def add_member_notes(db: AsyncSession, session_id: int, caller: CallerContext, notes: str) -> CoachingSession:
    session = await find_session(db, session_id, caller)
    if not can_act_as_member(caller, session.member_id):
        raise Forbidden("You can only add notes to your own sessions")

    session.member_notes = notes
    await db.commit()
    return await _load_session(db, session.id)


async def rate_session(
    db: AsyncSession,
    session_id: int,
    caller: CallerContext,
    rating: int,
    feedback: str | None = None,
) -> CoachingSession:
    """Record the member's rating. Only completed sessions, and only once."""
    session = await find_session(db, session_id, caller)
    if not can_act_as_member(caller, session.member_id):
        raise Forbidden("Only the member who attended can rate this session")
    if not 1 <= rating <= 5:
        raise EngineError("Rating must be between 1 and 5", rule="invalid_rating")
    if session.status != SessionStatus.COMPLETED:
        raise InvalidTransition("Only completed sessions can be rated")
    if session.rating is not None:
        raise InvalidTransition("This session has already been rated", rule="already_rated")

    await _transition(
        db,
        session,
        CoachingSession.status == SessionStatus.COMPLETED,
        CoachingSession.rating.is_(None),
        message="This session has already been rated",
        rule="already_rated",
        rating=rating,
        rating_feedback=feedback,
    )
    await db.commit()

    await notify(
        user_id=session.coach_id,
        title="Session Rated",
        message=f"{session.member.user.display_name} rated your session {rating}/5 stars",
        category=NotificationCategory.SYSTEM,
    )
    return await _load_session(db, session.id)
