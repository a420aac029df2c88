import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum as SAEnum
from sqlmodel import Field, SQLModel

from app.core.clock import shop_now


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that occupy the professional's calendar
BLOCKING_STATUSES = frozenset(
    {AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED}
)

# Statuses that still expect the client to show up (reminders apply)
UPCOMING_STATUSES = frozenset({AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED})


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: int | None = Field(default=None, primary_key=True)
    professional_id: int = Field(index=True)
    start_time: datetime = Field(sa_type=DateTime(), index=True)
    end_time: datetime = Field(sa_type=DateTime())
    status: AppointmentStatus = Field(
        default=AppointmentStatus.SCHEDULED,
        sa_column=Column(
            SAEnum(
                AppointmentStatus,
                name="appointment_status",
                native_enum=False,
                length=20,
                values_callable=_enum_values,
            ),
            nullable=False,
            index=True,
        ),
    )
    client_name: str | None = None
    client_contact: str | None = None  # phone number used for WhatsApp
    service_name: str | None = None
    professional_name: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=shop_now, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=shop_now, sa_type=DateTime())


class AppointmentCreate(SQLModel):
    professional_id: int
    start_time: datetime
    duration_minutes: int
    client_name: str | None = None
    client_contact: str | None = None
    service_name: str | None = None
    professional_name: str | None = None
    notes: str | None = None


class AppointmentPublic(SQLModel):
    id: int
    professional_id: int
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    client_name: str | None = None
    client_contact: str | None = None
    service_name: str | None = None
    professional_name: str | None = None
    notes: str | None = None
    created_at: datetime
