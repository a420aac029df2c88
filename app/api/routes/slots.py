from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session
from app.api.schemas.appointment import AvailableSlotsResponse, SlotInfo
from app.services.slot_service import get_available_slots

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/available", response_model=AvailableSlotsResponse)
async def available_slots(
    professional_id: int = Query(...),
    date_param: date = Query(..., alias="date"),
    duration_minutes: int = Query(...),
    session: AsyncSession = Depends(get_session),
) -> AvailableSlotsResponse:
    """Bookable start times for the professional on the given date (shop local time)."""
    starts = await get_available_slots(session, professional_id, date_param, duration_minutes)
    return AvailableSlotsResponse(
        date=date_param.isoformat(),
        professional_id=professional_id,
        duration_minutes=duration_minutes,
        slots=[SlotInfo(start=s, end=s + timedelta(minutes=duration_minutes)) for s in starts],
    )
