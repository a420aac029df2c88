from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import shop_now
from app.core.config import settings
from app.core.errors import ValidationError
from app.models.appointment import BLOCKING_STATUSES, Appointment, AppointmentStatus
from app.services.registry_service import (
    get_active_working_hours,
    list_blocked_intervals_for_date,
    weekday_of,
)


class _Interval(Protocol):
    start_time: datetime
    end_time: datetime


class _Hours(Protocol):
    start_time: time
    end_time: time


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Three-way test on half-open ranges; touching endpoints do not overlap."""
    return (
        (other_start <= start < other_end)
        or (other_start < end <= other_end)
        or (start <= other_start and end >= other_end)
    )


def validate_duration(duration_minutes: int) -> None:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise ValidationError("service duration must be a whole number of minutes")
    if duration_minutes <= 0:
        raise ValidationError(f"service duration must be positive, got {duration_minutes}")


def compute_slots(
    working_hours: _Hours | None,
    appointments: Iterable[Appointment],
    blocked_intervals: Iterable[_Interval],
    target_date: date,
    duration_minutes: int,
    now: datetime,
    granularity_minutes: int = 30,
) -> list[datetime]:
    """Bookable start times for one professional on one day, ascending.

    Pure: the result depends only on the arguments. `working_hours` is the single
    active record for the weekday of `target_date`, or None for a day off.
    Appointments outside the blocking statuses are ignored.
    """
    validate_duration(duration_minutes)
    if granularity_minutes <= 0:
        raise ValidationError(f"slot granularity must be positive, got {granularity_minutes}")
    if working_hours is None:
        return []

    busy = [
        (a.start_time, a.end_time)
        for a in appointments
        if AppointmentStatus(a.status) in BLOCKING_STATUSES
    ]
    busy.extend((b.start_time, b.end_time) for b in blocked_intervals)

    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=granularity_minutes)
    day_end = datetime.combine(target_date, working_hours.end_time)
    candidate = datetime.combine(target_date, working_hours.start_time)

    slots: list[datetime] = []
    while candidate + duration <= day_end:
        candidate_end = candidate + duration
        if candidate > now and not any(
            intervals_overlap(candidate, candidate_end, start, end) for start, end in busy
        ):
            slots.append(candidate)
        candidate += step
    return slots


async def get_blocking_appointments(
    session: AsyncSession,
    professional_id: int,
    start_inclusive: datetime,
    end_exclusive: datetime,
    exclude_id: int | None = None,
) -> list[Appointment]:
    """Appointments in a blocking status intersecting [start_inclusive, end_exclusive)."""
    q = select(Appointment).where(
        Appointment.professional_id == professional_id,
        Appointment.status.in_(list(BLOCKING_STATUSES)),
        Appointment.start_time < end_exclusive,
        Appointment.end_time > start_inclusive,
    )
    if exclude_id is not None:
        q = q.where(Appointment.id != exclude_id)
    result = await session.execute(q.order_by(Appointment.start_time))
    return list(result.scalars().all())


async def get_available_slots(
    session: AsyncSession,
    professional_id: int,
    d: date,
    duration_minutes: int,
    now: datetime | None = None,
) -> list[datetime]:
    """Load the registries for (professional, day) and compute the bookable starts."""
    validate_duration(duration_minutes)
    if now is None:
        now = shop_now()
    hours = await get_active_working_hours(session, professional_id, weekday_of(d))
    if hours is None:
        return []
    day_start = datetime.combine(d, time.min)
    day_end = day_start + timedelta(days=1)
    appointments = await get_blocking_appointments(session, professional_id, day_start, day_end)
    blocked = await list_blocked_intervals_for_date(session, professional_id, d)
    return compute_slots(
        hours,
        appointments,
        blocked,
        d,
        duration_minutes,
        now,
        granularity_minutes=settings.slot_granularity_minutes,
    )
