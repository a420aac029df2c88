import logging
import re
from dataclasses import dataclass
from typing import Protocol

import httpx

from app.core.config import settings
from app.core.errors import GatewayError
from app.models.appointment import Appointment
from app.models.reminder import ReminderTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    ok: bool
    error: str | None = None


class NotificationGateway(Protocol):
    @property
    def configured(self) -> bool: ...

    async def send(self, contact: str, text: str) -> SendResult: ...


def normalize_phone(phone: str, country_code: str) -> str:
    """Digits only, prefixed with the country code when it is missing."""
    digits = re.sub(r"\D", "", phone or "")
    if digits and country_code and not digits.startswith(country_code):
        digits = country_code + digits
    return digits


class WhatsAppGateway:
    """Sends text messages through a W-API compatible HTTP endpoint."""

    def __init__(
        self,
        api_url: str,
        instance_id: str,
        token: str,
        country_code: str = "55",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self.instance_id = instance_id
        self.token = token
        self.country_code = country_code
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "WhatsAppGateway":
        return cls(
            api_url=settings.whatsapp_api_url,
            instance_id=settings.whatsapp_instance_id,
            token=settings.whatsapp_token,
            country_code=settings.whatsapp_country_code,
            timeout=settings.whatsapp_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.instance_id and self.token)

    async def send(self, contact: str, text: str) -> SendResult:
        if not self.configured:
            logger.debug("WhatsApp gateway not configured, skipping send")
            return SendResult(ok=False, error="WhatsApp gateway not configured")
        phone = normalize_phone(contact, self.country_code)
        if not phone:
            return SendResult(ok=False, error="Contact has no phone digits")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.api_url,
                    params={"instanceId": self.instance_id},
                    json={"phone": phone, "message": text},
                    headers={"Authorization": f"Bearer {self.token}"},
                )
        except httpx.HTTPError as e:
            logger.warning("WhatsApp send to %s failed: %s", phone, e)
            return SendResult(ok=False, error=f"{type(e).__name__}: {e}")
        if not resp.is_success:
            logger.warning("WhatsApp send failed: status=%s body=%s", resp.status_code, resp.text[:500])
            return SendResult(ok=False, error=f"HTTP {resp.status_code}: {resp.text[:200]}")
        logger.info("WhatsApp message sent to %s", phone)
        return SendResult(ok=True)


async def deliver(gateway: NotificationGateway, contact: str, text: str) -> None:
    """Send through `gateway`, raising GatewayError on any kind of failure."""
    try:
        result = await gateway.send(contact, text)
    except Exception as e:
        raise GatewayError(f"{type(e).__name__}: {e}") from e
    if not result.ok:
        raise GatewayError(result.error or "delivery failed")


_REMINDER_WHEN = {
    ReminderTier.DAY_BEFORE: "tomorrow",
    ReminderTier.HOUR_BEFORE: "in 1 hour",
    ReminderTier.HALF_HOUR_BEFORE: "in 30 minutes",
}


def _appointment_lines(appointment: Appointment) -> str:
    return (
        f"📅 *Date:* {appointment.start_time.strftime('%A, %d/%m')}\n"
        f"🕐 *Time:* {appointment.start_time.strftime('%H:%M')}\n"
        f"✂️ *Service:* {appointment.service_name or 'Service'}\n"
        f"💈 *Professional:* {appointment.professional_name or 'Professional'}\n"
        f"🏪 *Place:* {settings.shop_name or 'Barbershop'}"
    )


def format_reminder_message(appointment: Appointment, tier: ReminderTier) -> str:
    return (
        "⏰ *Appointment Reminder*\n\n"
        f"Hi {appointment.client_name or 'there'}!\n\n"
        f"Just a reminder of your appointment {_REMINDER_WHEN[tier]}:\n\n"
        f"{_appointment_lines(appointment)}\n\n"
        "See you soon! 😊"
    )


def format_booking_confirmation(appointment: Appointment) -> str:
    message = (
        "✅ *Appointment Confirmed!*\n\n"
        f"Hi {appointment.client_name or 'there'}!\n\n"
        f"Your appointment at *{settings.shop_name or 'Barbershop'}* is booked:\n\n"
        f"{_appointment_lines(appointment)}"
    )
    if settings.booking_portal_url:
        message += f"\n\nTo view or cancel, visit:\n{settings.booking_portal_url.rstrip('/')}/my-appointments"
    return message


async def send_booking_confirmation(appointment: Appointment, gateway: NotificationGateway | None = None) -> bool:
    """Compose and send the booking confirmation (call from background task). Never raises."""
    if not appointment.client_contact:
        logger.debug("Appointment %s has no contact, skipping confirmation", appointment.id)
        return False
    gateway = gateway or WhatsAppGateway.from_settings()
    try:
        await deliver(gateway, appointment.client_contact, format_booking_confirmation(appointment))
    except GatewayError as e:
        logger.warning("Booking confirmation for appointment %s not delivered: %s", appointment.id, e)
        return False
    return True
