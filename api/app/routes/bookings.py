"""Booking routes: create, list, inspect, cancel, and slot capacity.

All booking rules live in app.services.bookings; these handlers only map the
caller onto the service call. Engine errors are rendered by the handler in main.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_caller, require_coach
from app.models.member import AccountId, UserRole
from app.schemas import HHMM_PATTERN, BookingCancel, BookingCreate, BookingOut, CapacityOut
from app.services import bookings as booking_service
from app.services.capacity import check_slot_capacity
from app.services.permissions import CallerContext

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: BookingCreate,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    member_account_id = body.member_id
    if caller.role == UserRole.MEMBER:
        if member_account_id not in (None, caller.account_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Members can only book for themselves")
        member_account_id = caller.account_id
    elif member_account_id is None:
        raise HTTPException(status_code=422, detail="member_id is required")

    if caller.role == UserRole.COACH and body.coach_id != caller.account_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Coaches can only book their own slots")

    return await booking_service.create_booking(
        db,
        coach_id=body.coach_id,
        member_account_id=AccountId(member_account_id),
        requested_date=body.requested_date,
        requested_time=body.requested_time,
        duration=body.duration,
        member_notes=body.member_notes,
        create_group_chat=body.create_group_chat,
    )


@router.get("", response_model=list[BookingOut])
async def list_bookings(
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.list_bookings(db, caller)


@router.get("/capacity", response_model=CapacityOut)
async def slot_capacity(
    coach_id: int,
    on_date: date = Query(..., alias="date"),
    at_time: str = Query(..., alias="time", pattern=HHMM_PATTERN),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    remaining = await check_slot_capacity(db, coach_id, on_date, at_time)
    return CapacityOut(coach_id=coach_id, date=on_date, time=at_time, remaining_capacity=remaining)


@router.get("/pending/{coach_id}", response_model=list[BookingOut])
async def list_pending_bookings(
    coach_id: int,
    caller: CallerContext = Depends(require_coach),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.list_pending_bookings(db, coach_id, caller)


@router.get("/{booking_id}", response_model=BookingOut)
async def get_booking(
    booking_id: int,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.find_booking(db, booking_id, caller)


@router.post("/{booking_id}/cancel", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_booking(
    booking_id: int,
    body: BookingCancel | None = None,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    await booking_service.cancel_booking(db, booking_id, caller, reason=body.reason if body else None)
