"""Reminder sweep.

Runs every few minutes, looks at appointments starting within the lookahead
window, and sends at most one WhatsApp reminder per (appointment, tier).

Tier windows, in minutes before start, each gated by the lead time (minutes
between booking and start):

    24h    1380..1500   lead > 1440
    1h       55..65     60 < lead <= 1440
    30min    25..35     lead <= 60

With ``reminder_tier_cascade`` enabled the upper lead bounds are dropped, so an
appointment booked days ahead receives all three reminders in turn.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import shop_now
from app.core.config import settings
from app.core.errors import GatewayError
from app.models.appointment import UPCOMING_STATUSES, Appointment
from app.models.reminder import ReminderOutcome, ReminderRecord, ReminderTier
from app.services.whatsapp_service import NotificationGateway, deliver, format_reminder_message

logger = logging.getLogger(__name__)

DAY_WINDOW = (23 * 60, 25 * 60)
HOUR_WINDOW = (55, 65)
HALF_HOUR_WINDOW = (25, 35)


def determine_tier(minutes_until: float, lead_minutes: float, cascade: bool = False) -> ReminderTier | None:
    if DAY_WINDOW[0] <= minutes_until <= DAY_WINDOW[1] and lead_minutes > 24 * 60:
        return ReminderTier.DAY_BEFORE
    if HOUR_WINDOW[0] <= minutes_until <= HOUR_WINDOW[1] and lead_minutes > 60:
        if cascade or lead_minutes <= 24 * 60:
            return ReminderTier.HOUR_BEFORE
    if HALF_HOUR_WINDOW[0] <= minutes_until <= HALF_HOUR_WINDOW[1]:
        if lead_minutes <= 60 or (cascade and lead_minutes > HALF_HOUR_WINDOW[1]):
            return ReminderTier.HALF_HOUR_BEFORE
    return None


@dataclass
class SweepSummary:
    processed: int = 0
    sent: dict[str, int] = field(default_factory=lambda: {tier.value: 0 for tier in ReminderTier})
    skipped: int = 0
    errors: int = 0
    started_at: datetime | None = None

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "sent": dict(self.sent),
            "skipped": self.skipped,
            "errors": self.errors,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }


async def list_due_appointments(session: AsyncSession, now: datetime, lookahead: timedelta) -> list[Appointment]:
    result = await session.execute(
        select(Appointment)
        .where(
            Appointment.status.in_(list(UPCOMING_STATUSES)),
            Appointment.start_time >= now,
            Appointment.start_time <= now + lookahead,
            Appointment.client_contact.is_not(None),
            Appointment.client_contact != "",
        )
        .order_by(Appointment.start_time)
    )
    return list(result.scalars().all())


async def reminder_exists(session: AsyncSession, appointment_id: int, tier: ReminderTier) -> bool:
    result = await session.execute(
        select(ReminderRecord.id).where(
            ReminderRecord.appointment_id == appointment_id,
            ReminderRecord.tier == tier,
        )
    )
    return result.first() is not None


async def _record(
    session: AsyncSession, appointment_id: int, tier: ReminderTier, outcome: ReminderOutcome, error: str | None, now: datetime
) -> bool:
    """Insert the idempotency record. Returns False if another sweep already wrote it."""
    session.add(
        ReminderRecord(appointment_id=appointment_id, tier=tier, outcome=outcome, error=error, created_at=now)
    )
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return False
    return True


async def _process(
    session: AsyncSession,
    gateway: NotificationGateway,
    appointment: Appointment,
    now: datetime,
    summary: SweepSummary,
    cascade: bool,
) -> None:
    if not gateway.configured:
        # No record: the keys stay free until a gateway is configured
        logger.debug("Skipping %s: no WhatsApp configured", appointment.id)
        summary.skipped += 1
        return
    minutes_until = (appointment.start_time - now).total_seconds() / 60
    lead_minutes = (appointment.start_time - appointment.created_at).total_seconds() / 60
    tier = determine_tier(minutes_until, lead_minutes, cascade=cascade)
    if tier is None:
        summary.skipped += 1
        return
    if await reminder_exists(session, appointment.id, tier):
        logger.debug("Skipping %s: %s reminder already handled", appointment.id, tier.value)
        summary.skipped += 1
        return

    outcome, error = ReminderOutcome.SENT, None
    try:
        await deliver(gateway, appointment.client_contact, format_reminder_message(appointment, tier))
    except GatewayError as e:
        outcome, error = ReminderOutcome.FAILED, str(e)[:500]

    if not await _record(session, appointment.id, tier, outcome, error, now):
        logger.warning("Reminder %s for appointment %s was recorded by a concurrent sweep", tier.value, appointment.id)
        summary.skipped += 1
        return
    if outcome is ReminderOutcome.SENT:
        logger.info("Sent %s reminder for appointment %s", tier.value, appointment.id)
        summary.sent[tier.value] += 1
    else:
        logger.error("Failed to send %s reminder for appointment %s: %s", tier.value, appointment.id, error)
        summary.errors += 1


async def run_reminder_sweep(
    session: AsyncSession,
    gateway: NotificationGateway,
    now: datetime | None = None,
    cascade: bool | None = None,
) -> SweepSummary:
    """One pass over the upcoming appointments. Per-appointment failures are counted, never raised."""
    if now is None:
        now = shop_now()
    if cascade is None:
        cascade = settings.reminder_tier_cascade
    summary = SweepSummary(started_at=now)
    logger.info("Checking for reminders at %s", now.isoformat())

    appointments = await list_due_appointments(session, now, timedelta(hours=settings.reminder_lookahead_hours))
    # Detach so a rollback for one appointment does not expire the others
    for appointment in appointments:
        session.expunge(appointment)
    logger.info("Found %d upcoming appointments", len(appointments))

    for appointment in appointments:
        summary.processed += 1
        try:
            await _process(session, gateway, appointment, now, summary, cascade)
        except SQLAlchemyError as e:
            await session.rollback()
            logger.exception("Reminder processing failed for appointment %s: %s", appointment.id, e)
            summary.errors += 1
        except Exception as e:
            logger.exception("Reminder processing failed for appointment %s: %s", appointment.id, e)
            summary.errors += 1

    logger.info("Reminder sweep completed: %s", summary.as_dict())
    return summary


_sweep_lock = asyncio.Lock()


async def trigger_reminder_sweep(
    session_maker,
    gateway: NotificationGateway,
    now: datetime | None = None,
) -> SweepSummary | None:
    """Entry point for the periodic loop and the HTTP trigger.

    Returns None when a previous sweep in this process is still running. The run is
    bounded by ``reminder_sweep_timeout_seconds``; on timeout the records written so
    far stay committed.
    """
    if _sweep_lock.locked():
        logger.warning("Reminder sweep already running, skipping this trigger")
        return None
    async with _sweep_lock:
        async with session_maker() as session:
            try:
                return await asyncio.wait_for(
                    run_reminder_sweep(session, gateway, now=now),
                    timeout=settings.reminder_sweep_timeout_seconds,
                )
            except Exception:
                await session.rollback()
                raise
