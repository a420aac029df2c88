from app.models.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStatus,
)
from app.models.blocked_interval import BlockedInterval, BlockedIntervalCreate, BlockedIntervalPublic
from app.models.reminder import ReminderOutcome, ReminderRecord, ReminderTier
from app.models.working_hours import WorkingHours, WorkingHoursInput, WorkingHoursPublic

__all__ = [
    "Appointment",
    "AppointmentCreate",
    "AppointmentPublic",
    "AppointmentStatus",
    "BlockedInterval",
    "BlockedIntervalCreate",
    "BlockedIntervalPublic",
    "ReminderOutcome",
    "ReminderRecord",
    "ReminderTier",
    "WorkingHours",
    "WorkingHoursInput",
    "WorkingHoursPublic",
]
