import logging
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_gateway, get_session
from app.api.schemas.appointment import BookAppointmentRequest, StatusChangeRequest
from app.models.appointment import Appointment, AppointmentCreate, AppointmentPublic, AppointmentStatus
from app.services.appointment_service import (
    create_appointment,
    get_appointment,
    list_appointments_for_day,
    transition_appointment,
)
from app.services.whatsapp_service import NotificationGateway, send_booking_confirmation

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])


def _to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic.model_validate(a, from_attributes=True)


@router.post("", response_model=AppointmentPublic, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    body: BookAppointmentRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    gateway: NotificationGateway = Depends(get_gateway),
) -> AppointmentPublic:
    data = AppointmentCreate(**body.model_dump())
    appointment = await create_appointment(session, data)
    # WhatsApp confirmation in background; failure never undoes the booking
    background_tasks.add_task(send_booking_confirmation, appointment, gateway)
    return _to_public(appointment)


@router.get("", response_model=list[AppointmentPublic])
async def list_appointments(
    professional_id: int = Query(...),
    date_param: date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
) -> list[AppointmentPublic]:
    appointments = await list_appointments_for_day(session, professional_id, date_param)
    return [_to_public(a) for a in appointments]


@router.get("/{appointment_id}", response_model=AppointmentPublic)
async def read_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
) -> AppointmentPublic:
    return _to_public(await get_appointment(session, appointment_id))


@router.patch("/{appointment_id}/status", response_model=AppointmentPublic)
async def change_status(
    appointment_id: int,
    body: StatusChangeRequest,
    session: AsyncSession = Depends(get_session),
) -> AppointmentPublic:
    """Move the appointment through its lifecycle; illegal moves return 409."""
    appointment = await transition_appointment(session, appointment_id, body.status)
    return _to_public(appointment)


@router.post("/{appointment_id}/cancel", response_model=AppointmentPublic)
async def cancel(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
) -> AppointmentPublic:
    appointment = await transition_appointment(session, appointment_id, AppointmentStatus.CANCELLED)
    return _to_public(appointment)
