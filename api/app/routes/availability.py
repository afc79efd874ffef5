"""Availability routes: bookable slots for a coach over a date range."""

from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_caller
from app.schemas import AvailableSlotOut
from app.services.capacity import list_available_slots
from app.services.permissions import CallerContext

router = APIRouter(prefix="/availability", tags=["availability"])

MAX_RANGE_DAYS = 62


@router.get("/{coach_id}/slots", response_model=list[AvailableSlotOut])
async def get_available_slots(
    coach_id: int,
    start_date: date,
    end_date: date,
    duration: int = Query(60, gt=0, le=480),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    if end_date < start_date:
        raise HTTPException(status_code=422, detail="end_date is before start_date")
    if end_date - start_date > timedelta(days=MAX_RANGE_DAYS):
        raise HTTPException(
            status_code=422,
            detail=f"Date range cannot exceed {MAX_RANGE_DAYS} days",
        )

    return await list_available_slots(db, coach_id, start_date, end_date, duration)
