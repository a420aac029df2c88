import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum as SAEnum, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.core.clock import shop_now


class ReminderTier(str, enum.Enum):
    DAY_BEFORE = "24h"
    HOUR_BEFORE = "1h"
    HALF_HOUR_BEFORE = "30min"


class ReminderOutcome(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class ReminderRecord(SQLModel, table=True):
    """Append-only log of reminder attempts; one row per (appointment, tier)."""

    __tablename__ = "appointment_reminders"
    __table_args__ = (
        UniqueConstraint("appointment_id", "tier", name="uq_appointment_reminders_appointment_tier"),
    )
    id: int | None = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    tier: ReminderTier = Field(
        sa_column=Column(
            SAEnum(ReminderTier, name="reminder_tier", native_enum=False, length=10, values_callable=_enum_values),
            nullable=False,
        )
    )
    outcome: ReminderOutcome = Field(
        sa_column=Column(
            SAEnum(ReminderOutcome, name="reminder_outcome", native_enum=False, length=10, values_callable=_enum_values),
            nullable=False,
        )
    )
    error: str | None = None
    created_at: datetime = Field(default_factory=shop_now, sa_type=DateTime())
