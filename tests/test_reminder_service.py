import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from app.core.config import settings
from app.models.appointment import AppointmentStatus
from app.models.reminder import ReminderOutcome, ReminderRecord, ReminderTier
from app.services import reminder_service
from app.services.reminder_service import determine_tier, run_reminder_sweep, trigger_reminder_sweep
from app.services.whatsapp_service import SendResult, WhatsAppGateway

START = datetime(2026, 3, 2, 10, 0)


async def _records(session) -> list[ReminderRecord]:
    result = await session.execute(select(ReminderRecord).order_by(ReminderRecord.id))
    return list(result.scalars().all())


async def _sweep_every(session, gateway, start: datetime, end: datetime, step_minutes: int = 5, cascade=False):
    now = start
    while now <= end:
        await run_reminder_sweep(session, gateway, now=now, cascade=cascade)
        now += timedelta(minutes=step_minutes)


@pytest.mark.parametrize(
    "minutes_until, lead, expected",
    [
        (1440, 3 * 1440, ReminderTier.DAY_BEFORE),
        (1380, 1441, ReminderTier.DAY_BEFORE),
        (1500, 2000, ReminderTier.DAY_BEFORE),
        (1379, 2000, None),
        (1501, 2000, None),
        (1440, 1440, None),  # booked exactly a day ahead
        (60, 1440, ReminderTier.HOUR_BEFORE),
        (55, 61, ReminderTier.HOUR_BEFORE),
        (65, 300, ReminderTier.HOUR_BEFORE),
        (54, 300, None),
        (66, 300, None),
        (60, 60, None),
        (60, 3 * 1440, None),  # already covered by the day-before tier
        (30, 60, ReminderTier.HALF_HOUR_BEFORE),
        (25, 40, ReminderTier.HALF_HOUR_BEFORE),
        (35, 35, ReminderTier.HALF_HOUR_BEFORE),
        (24, 40, None),
        (36, 40, None),
        (30, 61, None),
        (30, 10, ReminderTier.HALF_HOUR_BEFORE),
        (60, 10, None),
        (1440, 10, None),
    ],
)
def test_determine_tier(minutes_until, lead, expected):
    assert determine_tier(minutes_until, lead) == expected


@pytest.mark.parametrize(
    "minutes_until, lead, expected",
    [
        (1440, 3 * 1440, ReminderTier.DAY_BEFORE),
        (60, 3 * 1440, ReminderTier.HOUR_BEFORE),
        (30, 3 * 1440, ReminderTier.HALF_HOUR_BEFORE),
        (30, 300, ReminderTier.HALF_HOUR_BEFORE),
        (30, 36, ReminderTier.HALF_HOUR_BEFORE),
        (30, 30, ReminderTier.HALF_HOUR_BEFORE),
        (60, 60, None),
        (1440, 1440, None),
    ],
)
def test_determine_tier_cascade(minutes_until, lead, expected):
    assert determine_tier(minutes_until, lead, cascade=True) == expected


async def test_day_before_reminder_is_sent_once(session, add_appointment, gateway):
    appointment = await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))

    first = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=24))
    second = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=23, minutes=55))

    assert first.processed == 1
    assert first.sent == {"24h": 1, "1h": 0, "30min": 0}
    assert second.sent == {"24h": 0, "1h": 0, "30min": 0}
    assert second.skipped == 1
    assert len(gateway.messages) == 1
    contact, text = gateway.messages[0]
    assert contact == "11 98765-4321"
    assert "tomorrow" in text

    records = await _records(session)
    assert [(r.appointment_id, r.tier, r.outcome) for r in records] == [
        (appointment.id, ReminderTier.DAY_BEFORE, ReminderOutcome.SENT)
    ]


async def test_short_notice_booking_gets_no_reminder_outside_its_window(session, add_appointment, gateway):
    # Booked 10 minutes ahead: the half-hour window has already passed
    await add_appointment(1, START, START + timedelta(minutes=30), created_at=START - timedelta(minutes=10))

    await _sweep_every(session, gateway, START - timedelta(minutes=10), START, step_minutes=1)

    assert gateway.messages == []
    assert await _records(session) == []


async def test_same_day_booking_gets_only_the_hour_reminder(session, add_appointment, gateway):
    await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(hours=5))

    await _sweep_every(session, gateway, START - timedelta(hours=5), START)

    assert [r.tier for r in await _records(session)] == [ReminderTier.HOUR_BEFORE]


async def test_last_minute_booking_gets_only_the_half_hour_reminder(session, add_appointment, gateway):
    await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(minutes=50))

    await _sweep_every(session, gateway, START - timedelta(minutes=50), START)

    assert [r.tier for r in await _records(session)] == [ReminderTier.HALF_HOUR_BEFORE]


async def test_booking_days_ahead_gets_only_the_day_reminder_by_default(session, add_appointment, gateway):
    await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))

    await _sweep_every(session, gateway, START - timedelta(hours=25), START)

    assert [r.tier for r in await _records(session)] == [ReminderTier.DAY_BEFORE]


async def test_cascade_sends_every_tier_in_order(session, add_appointment, gateway):
    await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))

    await _sweep_every(session, gateway, START - timedelta(hours=25), START, cascade=True)

    records = await _records(session)
    assert [r.tier for r in records] == [
        ReminderTier.DAY_BEFORE,
        ReminderTier.HOUR_BEFORE,
        ReminderTier.HALF_HOUR_BEFORE,
    ]
    assert [r.created_at for r in records] == sorted(r.created_at for r in records)
    assert len(gateway.messages) == 3


async def test_failed_send_is_recorded_and_not_retried(session, add_appointment, make_gateway):
    gateway = make_gateway(failing={"11 98765-4321"})
    await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))

    first = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=24))
    second = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=23, minutes=55))

    assert first.errors == 1
    assert first.sent["24h"] == 0
    assert second.skipped == 1
    assert len(gateway.messages) == 1
    [record] = await _records(session)
    assert record.outcome == ReminderOutcome.FAILED
    assert "HTTP 500" in record.error


async def test_gateway_exception_is_isolated(session, add_appointment, make_gateway):
    gateway = make_gateway(raising={"broken"})
    await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3), client_contact="broken")
    await add_appointment(2, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))

    summary = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=24))

    assert summary.processed == 2
    assert summary.errors == 1
    assert summary.sent["24h"] == 1
    outcomes = sorted(r.outcome.value for r in await _records(session))
    assert outcomes == ["failed", "sent"]


async def test_unexpected_error_does_not_stop_the_sweep(session, add_appointment, gateway, monkeypatch):
    broken = await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))
    healthy = await add_appointment(2, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))
    original = reminder_service.format_reminder_message

    def format_or_fail(appointment, tier):
        if appointment.id == broken.id:
            raise KeyError("template")
        return original(appointment, tier)

    monkeypatch.setattr(reminder_service, "format_reminder_message", format_or_fail)

    summary = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=24))

    assert summary.errors == 1
    assert summary.sent["24h"] == 1
    assert [r.appointment_id for r in await _records(session)] == [healthy.id]


async def test_concurrent_record_counts_as_handled(session, session_maker, add_appointment):
    appointment = await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))

    class RacingGateway:
        """Another worker records the same reminder while this one is sending."""

        configured = True

        async def send(self, contact, text):
            async with session_maker() as other:
                other.add(
                    ReminderRecord(
                        appointment_id=appointment.id,
                        tier=ReminderTier.DAY_BEFORE,
                        outcome=ReminderOutcome.SENT,
                        created_at=START,
                    )
                )
                await other.commit()
            return SendResult(ok=True)

    summary = await run_reminder_sweep(session, RacingGateway(), now=START - timedelta(hours=24))

    assert summary.skipped == 1
    assert summary.errors == 0
    assert summary.sent["24h"] == 0
    assert len(await _records(session)) == 1


@pytest.mark.parametrize("contact", [None, ""])
async def test_appointments_without_contact_are_not_processed(session, add_appointment, gateway, contact):
    await add_appointment(
        1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3), client_contact=contact
    )

    summary = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=24))

    assert summary.processed == 0
    assert gateway.messages == []


@pytest.mark.parametrize(
    "status", [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW]
)
async def test_closed_appointments_get_no_reminder(session, add_appointment, gateway, status):
    await add_appointment(
        1, START, START + timedelta(hours=1), status=status, created_at=START - timedelta(days=3)
    )

    summary = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=24))

    assert summary.processed == 0


async def test_confirmed_appointments_get_reminders(session, add_appointment, gateway):
    await add_appointment(
        1, START, START + timedelta(hours=1), status=AppointmentStatus.CONFIRMED, created_at=START - timedelta(days=3)
    )

    summary = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=24))

    assert summary.sent["24h"] == 1


async def test_summary_as_dict(session, gateway):
    now = START - timedelta(hours=24)

    summary = await run_reminder_sweep(session, gateway, now=now)

    assert summary.as_dict() == {
        "processed": 0,
        "sent": {"24h": 0, "1h": 0, "30min": 0},
        "skipped": 0,
        "errors": 0,
        "started_at": now.isoformat(),
    }


async def test_trigger_runs_a_sweep(session_maker, add_appointment, gateway):
    await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))

    summary = await trigger_reminder_sweep(session_maker, gateway, now=START - timedelta(hours=24))

    assert summary is not None
    assert summary.sent["24h"] == 1


async def test_trigger_skips_while_a_sweep_is_running(session_maker, gateway):
    async with reminder_service._sweep_lock:
        assert await trigger_reminder_sweep(session_maker, gateway) is None


async def test_trigger_is_bounded_by_timeout(session_maker, add_appointment, monkeypatch):
    class SlowGateway:
        configured = True

        async def send(self, contact, text):
            await asyncio.sleep(5)
            return SendResult(ok=True)

    await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))
    monkeypatch.setattr(settings, "reminder_sweep_timeout_seconds", 0.1)

    with pytest.raises(asyncio.TimeoutError):
        await trigger_reminder_sweep(session_maker, SlowGateway(), now=START - timedelta(hours=24))
    assert not reminder_service._sweep_lock.locked()


async def test_unconfigured_gateway_leaves_reminders_pending(session, add_appointment, make_gateway):
    await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))

    summary = await run_reminder_sweep(session, make_gateway(configured=False), now=START - timedelta(hours=24))

    assert summary.skipped == 1
    assert summary.errors == 0
    assert await _records(session) == []

    gateway = make_gateway()
    later = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=23, minutes=55))

    assert later.sent["24h"] == 1
    assert [r.outcome for r in await _records(session)] == [ReminderOutcome.SENT]


async def test_whatsapp_gateway_without_credentials_writes_no_record(session, add_appointment):
    await add_appointment(1, START, START + timedelta(hours=1), created_at=START - timedelta(days=3))
    gateway = WhatsAppGateway(api_url="https://wa.example.test/send", instance_id="", token="")

    summary = await run_reminder_sweep(session, gateway, now=START - timedelta(hours=24))

    assert summary.errors == 0
    assert summary.skipped == 1
    assert await _records(session) == []
