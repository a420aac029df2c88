from datetime import date, datetime, time, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import to_shop_naive
from app.core.errors import NotFoundError, ValidationError
from app.models.blocked_interval import BlockedInterval, BlockedIntervalCreate
from app.models.working_hours import WorkingHours, WorkingHoursInput


def weekday_of(d: date) -> int:
    """Weekday number used by the registry: 0 = Sunday ... 6 = Saturday."""
    return d.isoweekday() % 7


def _validate_working_hours(weekday: int, start: time, end: time) -> None:
    if not 0 <= weekday <= 6:
        raise ValidationError(f"weekday must be between 0 and 6, got {weekday}")
    if start >= end:
        raise ValidationError("working hours start_time must be before end_time")


def _validate_blocked_interval(start: datetime, end: datetime) -> None:
    if end <= start:
        raise ValidationError("blocked interval end_time must be after start_time")


async def get_active_working_hours(
    session: AsyncSession, professional_id: int, weekday: int
) -> WorkingHours | None:
    """The single record consulted for a date; lowest id wins if several are active."""
    result = await session.execute(
        select(WorkingHours)
        .where(
            WorkingHours.professional_id == professional_id,
            WorkingHours.weekday == weekday,
            WorkingHours.active == True,  # noqa: E712
        )
        .order_by(WorkingHours.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_working_hours(session: AsyncSession, professional_id: int, weekday: int) -> WorkingHours:
    hours = await get_active_working_hours(session, professional_id, weekday)
    if hours is None:
        raise NotFoundError(f"No active working hours for professional {professional_id} on weekday {weekday}")
    return hours


async def list_working_hours(session: AsyncSession, professional_id: int) -> list[WorkingHours]:
    result = await session.execute(
        select(WorkingHours)
        .where(WorkingHours.professional_id == professional_id)
        .order_by(WorkingHours.weekday, WorkingHours.start_time)
    )
    return list(result.scalars().all())


async def replace_working_hours(
    session: AsyncSession, professional_id: int, hours: list[WorkingHoursInput]
) -> list[WorkingHours]:
    """Replace the weekly schedule of a professional. Only active entries are stored."""
    for entry in hours:
        _validate_working_hours(entry.weekday, entry.start_time, entry.end_time)
    active_days = [entry.weekday for entry in hours if entry.active]
    if len(active_days) != len(set(active_days)):
        raise ValidationError("at most one active working hours entry per weekday")

    await session.execute(delete(WorkingHours).where(WorkingHours.professional_id == professional_id))
    rows = [
        WorkingHours(
            professional_id=professional_id,
            weekday=entry.weekday,
            start_time=entry.start_time,
            end_time=entry.end_time,
            active=True,
        )
        for entry in hours
        if entry.active
    ]
    session.add_all(rows)
    await session.flush()
    return rows


async def create_blocked_interval(session: AsyncSession, data: BlockedIntervalCreate) -> BlockedInterval:
    start, end = to_shop_naive(data.start_time), to_shop_naive(data.end_time)
    _validate_blocked_interval(start, end)
    blocked = BlockedInterval(
        professional_id=data.professional_id,
        start_time=start,
        end_time=end,
        reason=data.reason,
    )
    session.add(blocked)
    await session.flush()
    await session.refresh(blocked)
    return blocked


async def list_blocked_intervals_for_date(
    session: AsyncSession, professional_id: int, d: date
) -> list[BlockedInterval]:
    """Blocked intervals intersecting the calendar day `d`."""
    day_start = datetime.combine(d, time.min)
    day_end = day_start + timedelta(days=1)
    result = await session.execute(
        select(BlockedInterval)
        .where(
            BlockedInterval.professional_id == professional_id,
            BlockedInterval.start_time < day_end,
            BlockedInterval.end_time > day_start,
        )
        .order_by(BlockedInterval.start_time)
    )
    return list(result.scalars().all())


async def list_blocked_intervals(
    session: AsyncSession, professional_id: int, from_time: datetime | None = None
) -> list[BlockedInterval]:
    q = select(BlockedInterval).where(BlockedInterval.professional_id == professional_id)
    if from_time is not None:
        q = q.where(BlockedInterval.end_time > to_shop_naive(from_time))
    result = await session.execute(q.order_by(BlockedInterval.start_time))
    return list(result.scalars().all())


async def delete_blocked_interval(session: AsyncSession, blocked_id: int) -> None:
    blocked = await session.get(BlockedInterval, blocked_id)
    if blocked is None:
        raise NotFoundError(f"Blocked interval {blocked_id} not found")
    await session.delete(blocked)
    await session.flush()
