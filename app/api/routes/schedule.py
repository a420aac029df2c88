from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session
from app.api.schemas.schedule import ReplaceWorkingHoursRequest
from app.models.blocked_interval import BlockedIntervalCreate, BlockedIntervalPublic
from app.models.working_hours import WorkingHoursPublic
from app.services.registry_service import (
    create_blocked_interval,
    delete_blocked_interval,
    get_working_hours,
    list_blocked_intervals,
    list_working_hours,
    replace_working_hours,
)

router = APIRouter(tags=["schedule"])


@router.get("/professionals/{professional_id}/working-hours", response_model=list[WorkingHoursPublic])
async def read_working_hours(
    professional_id: int,
    session: AsyncSession = Depends(get_session),
):
    return await list_working_hours(session, professional_id)


@router.get("/professionals/{professional_id}/working-hours/{weekday}", response_model=WorkingHoursPublic)
async def read_working_hours_for_weekday(
    professional_id: int,
    weekday: int,
    session: AsyncSession = Depends(get_session),
):
    return await get_working_hours(session, professional_id, weekday)


@router.put("/professionals/{professional_id}/working-hours", response_model=list[WorkingHoursPublic])
async def save_working_hours(
    professional_id: int,
    body: ReplaceWorkingHoursRequest,
    session: AsyncSession = Depends(get_session),
):
    rows = await replace_working_hours(session, professional_id, body.hours)
    for row in rows:
        await session.refresh(row)
    return rows


@router.get("/professionals/{professional_id}/blocked-intervals", response_model=list[BlockedIntervalPublic])
async def read_blocked_intervals(
    professional_id: int,
    from_time: datetime | None = Query(None),
    session: AsyncSession = Depends(get_session),
):
    return await list_blocked_intervals(session, professional_id, from_time=from_time)


@router.post(
    "/blocked-intervals",
    response_model=BlockedIntervalPublic,
    status_code=status.HTTP_201_CREATED,
)
async def add_blocked_interval(
    body: BlockedIntervalCreate,
    session: AsyncSession = Depends(get_session),
):
    return await create_blocked_interval(session, body)


@router.delete("/blocked-intervals/{blocked_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_blocked_interval(
    blocked_id: int,
    session: AsyncSession = Depends(get_session),
) -> None:
    await delete_blocked_interval(session, blocked_id)
