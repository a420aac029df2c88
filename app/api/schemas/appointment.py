from datetime import datetime

from pydantic import BaseModel

from app.models.appointment import AppointmentStatus


class SlotInfo(BaseModel):
    start: datetime
    end: datetime


class AvailableSlotsResponse(BaseModel):
    date: str  # YYYY-MM-DD
    professional_id: int
    duration_minutes: int
    slots: list[SlotInfo]


class BookAppointmentRequest(BaseModel):
    professional_id: int
    start_time: datetime
    duration_minutes: int
    client_name: str | None = None
    client_contact: str | None = None
    service_name: str | None = None
    professional_name: str | None = None
    notes: str | None = None


class StatusChangeRequest(BaseModel):
    status: AppointmentStatus
