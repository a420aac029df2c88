import asyncio
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import shop_now, to_shop_naive
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.appointment import Appointment, AppointmentCreate, AppointmentStatus
from app.services.appointment_state import ensure_transition
from app.services.events import AppointmentEvents, bus
from app.services.registry_service import (
    get_active_working_hours,
    list_blocked_intervals_for_date,
    weekday_of,
)
from app.services.slot_service import get_blocking_appointments, intervals_overlap, validate_duration

logger = logging.getLogger(__name__)

# Serializes check-and-commit per professional inside this process. Postgres
# deployments additionally take a transaction-scoped advisory lock and carry an
# exclusion constraint (see migrations), which covers multiple workers.
# One lock per professional id is kept for the life of the process.
_professional_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)


async def _lock_professional(session: AsyncSession, professional_id: int) -> None:
    bind = session.bind
    if bind is not None and bind.dialect.name == "postgresql":
        await session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": professional_id})


async def create_appointment(
    session: AsyncSession, data: AppointmentCreate, now: datetime | None = None
) -> Appointment:
    """Commit a new `scheduled` appointment, refusing any overlap.

    The overlap check and the insert run under the professional's lock and are
    committed before the lock is released.
    """
    validate_duration(data.duration_minutes)
    start = to_shop_naive(data.start_time)
    end = start + timedelta(minutes=data.duration_minutes)
    if now is None:
        now = shop_now()
    if start <= now:
        raise ValidationError("Appointments must be scheduled in the future.")

    hours = await get_active_working_hours(session, data.professional_id, weekday_of(start.date()))
    if hours is None:
        raise ValidationError("The professional does not work on this day.")
    day_open = datetime.combine(start.date(), hours.start_time)
    day_close = datetime.combine(start.date(), hours.end_time)
    if start < day_open or end > day_close:
        raise ValidationError("Appointment is outside working hours.")

    async with _professional_locks[data.professional_id]:
        await _lock_professional(session, data.professional_id)

        blocked = await list_blocked_intervals_for_date(session, data.professional_id, start.date())
        if any(intervals_overlap(start, end, b.start_time, b.end_time) for b in blocked):
            raise ConflictError("This time is blocked.")

        existing = await get_blocking_appointments(session, data.professional_id, start, end)
        if existing:
            raise ConflictError("This time is already booked.")

        appointment = Appointment(
            professional_id=data.professional_id,
            start_time=start,
            end_time=end,
            status=AppointmentStatus.SCHEDULED,
            client_name=data.client_name,
            client_contact=(data.client_contact or "").strip() or None,
            service_name=data.service_name,
            professional_name=data.professional_name,
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )
        session.add(appointment)
        try:
            await session.commit()
        except IntegrityError as exc:
            # Exclusion constraint fired for a booking committed by another worker
            await session.rollback()
            raise ConflictError("This time is already booked.") from exc
        await session.refresh(appointment)

    logger.info(
        "Booked appointment %s for professional %s at %s",
        appointment.id,
        appointment.professional_id,
        appointment.start_time,
    )
    return appointment


async def get_appointment(session: AsyncSession, appointment_id: int, for_update: bool = False) -> Appointment:
    q = select(Appointment).where(Appointment.id == appointment_id)
    if for_update:
        q = q.with_for_update()
    result = await session.execute(q)
    appointment = result.scalar_one_or_none()
    if appointment is None:
        raise NotFoundError(f"Appointment {appointment_id} not found")
    return appointment


async def list_appointments_for_day(
    session: AsyncSession, professional_id: int, d: date
) -> list[Appointment]:
    start = datetime.combine(d, time.min)
    end = start + timedelta(days=1)
    result = await session.execute(
        select(Appointment)
        .where(
            Appointment.professional_id == professional_id,
            Appointment.start_time >= start,
            Appointment.start_time < end,
        )
        .order_by(Appointment.start_time)
    )
    return list(result.scalars().all())


async def transition_appointment(
    session: AsyncSession,
    appointment_id: int,
    target: AppointmentStatus,
    now: datetime | None = None,
) -> Appointment:
    """Apply one lifecycle transition and publish its event once it is committed."""
    appointment = await get_appointment(session, appointment_id, for_update=True)
    current = AppointmentStatus(appointment.status)
    ensure_transition(current, target)

    appointment.status = target
    appointment.updated_at = now or shop_now()
    session.add(appointment)
    await session.commit()
    await session.refresh(appointment)
    logger.info("Appointment %s: %s -> %s", appointment.id, current.value, target.value)

    if target == AppointmentStatus.COMPLETED:
        bus.emit(AppointmentEvents.COMPLETED, appointment=appointment)
    elif target == AppointmentStatus.CANCELLED:
        bus.emit(AppointmentEvents.CANCELLED, appointment=appointment)
    return appointment


async def confirm_appointment(session: AsyncSession, appointment_id: int) -> Appointment:
    return await transition_appointment(session, appointment_id, AppointmentStatus.CONFIRMED)


async def complete_appointment(session: AsyncSession, appointment_id: int) -> Appointment:
    return await transition_appointment(session, appointment_id, AppointmentStatus.COMPLETED)


async def mark_no_show(session: AsyncSession, appointment_id: int) -> Appointment:
    return await transition_appointment(session, appointment_id, AppointmentStatus.NO_SHOW)


async def cancel_appointment(session: AsyncSession, appointment_id: int) -> Appointment:
    """Cancel keeps the row; the slot is freed because cancelled is not a blocking status."""
    return await transition_appointment(session, appointment_id, AppointmentStatus.CANCELLED)
