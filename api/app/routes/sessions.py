"""Coaching session routes: scheduling, lifecycle transitions, notes and rating."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_caller, require_coach
from app.models.member import MemberProfileId, UserRole
from app.models.session import CoachingSession
from app.schemas import (
    NotesIn,
    RatingIn,
    SessionCancel,
    SessionComplete,
    SessionCreate,
    SessionOut,
    SessionUpdate,
)
from app.services import sessions as session_service
from app.services.permissions import CallerContext

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _out(session: CoachingSession, caller: CallerContext) -> SessionOut:
    out = SessionOut.model_validate(session)
    # Coach notes are private to coaches and admins
    if caller.role == UserRole.MEMBER:
        out.coach_notes = None
    return out


def _out_list(sessions: list[CoachingSession], caller: CallerContext) -> list[SessionOut]:
    return [_out(s, caller) for s in sessions]


@router.post("", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SessionCreate,
    caller: CallerContext = Depends(require_coach),
    db: AsyncSession = Depends(get_db),
):
    session = await session_service.create_session(
        db,
        caller,
        coach_id=body.coach_id,
        member_id=MemberProfileId(body.member_id),
        scheduled_at=body.scheduled_at,
        duration=body.duration,
        session_type=body.type,
        member_notes=body.member_notes,
        create_group_chat=body.create_group_chat,
    )
    return _out(session, caller)


@router.get("", response_model=list[SessionOut])
async def list_sessions(caller: CallerContext = Depends(get_caller), db: AsyncSession = Depends(get_db)):
    return _out_list(await session_service.list_sessions(db, caller), caller)


@router.get("/upcoming", response_model=list[SessionOut])
async def list_upcoming_sessions(caller: CallerContext = Depends(get_caller), db: AsyncSession = Depends(get_db)):
    return _out_list(await session_service.list_upcoming_sessions(db, caller), caller)


@router.get("/member/{member_id}", response_model=list[SessionOut])
async def list_sessions_by_member(
    member_id: int,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    sessions = await session_service.list_sessions_by_member(db, MemberProfileId(member_id), caller)
    return _out_list(sessions, caller)


@router.get("/coach/{coach_id}", response_model=list[SessionOut])
async def list_sessions_by_coach(
    coach_id: int,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return _out_list(await session_service.list_sessions_by_coach(db, coach_id, caller), caller)


@router.get("/{session_id}", response_model=SessionOut)
async def get_session(session_id: int, caller: CallerContext = Depends(get_caller), db: AsyncSession = Depends(get_db)):
    return _out(await session_service.find_session(db, session_id, caller), caller)


@router.patch("/{session_id}", response_model=SessionOut)
async def update_session(
    session_id: int,
    body: SessionUpdate,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    session = await session_service.update_session(
        db,
        session_id,
        caller,
        scheduled_at=body.scheduled_at,
        duration=body.duration,
        session_type=body.type,
        member_notes=body.member_notes,
    )
    return _out(session, caller)


@router.post("/{session_id}/complete", response_model=SessionOut)
async def complete_session(
    session_id: int,
    body: SessionComplete,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    session = await session_service.complete_session(
        db, session_id, caller, coach_notes=body.coach_notes, outcomes=body.outcomes
    )
    return _out(session, caller)


@router.post("/{session_id}/cancel", response_model=SessionOut)
async def cancel_session(
    session_id: int,
    body: SessionCancel,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return _out(await session_service.cancel_session(db, session_id, caller, reason=body.reason), caller)


@router.patch("/{session_id}/coach-notes", response_model=SessionOut)
async def add_coach_notes(
    session_id: int,
    body: NotesIn,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return _out(await session_service.add_coach_notes(db, session_id, caller, body.notes), caller)


@router.patch("/{session_id}/member-notes", response_model=SessionOut)
async def add_member_notes(
    session_id: int,
    body: NotesIn,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return _out(await session_service.add_member_notes(db, session_id, caller, body.notes), caller)


@router.post("/{session_id}/rate", response_model=SessionOut)
async def rate_session(
    session_id: int,
    body: RatingIn,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    session = await session_service.rate_session(db, session_id, caller, rating=body.rating, feedback=body.feedback)
    return _out(session, caller)
