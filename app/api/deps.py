from fastapi import status

from app.core.db import get_session
from app.core.errors import (
    ConflictError,
    GatewayError,
    IllegalTransitionError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from app.services.whatsapp_service import NotificationGateway, WhatsAppGateway

__all__ = ["get_gateway", "get_session", "status_code_for"]

_STATUS_CODES: dict[type[SchedulingError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    IllegalTransitionError: status.HTTP_409_CONFLICT,
    GatewayError: status.HTTP_502_BAD_GATEWAY,
}


def status_code_for(exc: SchedulingError) -> int:
    for error_type, code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def get_gateway() -> NotificationGateway:
    return WhatsAppGateway.from_settings()
