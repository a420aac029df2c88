"""In-process event bus for appointment lifecycle events.

Consumers outside the scheduling core (loyalty points, commissions) subscribe
with ``@bus.on(AppointmentEvents.COMPLETED)``; handlers receive the appointment
as the ``appointment`` keyword argument. Coroutine handlers are scheduled on the
running loop, plain functions run inline.
"""

import logging

from pyee.asyncio import AsyncIOEventEmitter

logger = logging.getLogger(__name__)


class AppointmentEvents:
    COMPLETED = "appointment.completed"
    CANCELLED = "appointment.cancelled"


bus = AsyncIOEventEmitter()


@bus.on("error")
def _log_handler_error(exc: Exception) -> None:
    logger.error("Appointment event handler failed: %s", exc, exc_info=exc)


__all__ = ["AppointmentEvents", "bus"]
