import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_gateway
from app.api.schemas.reminder import SweepSummaryResponse
from app.core import db
from app.services.reminder_service import trigger_reminder_sweep
from app.services.whatsapp_service import NotificationGateway

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/reminders", tags=["reminders"])


@router.post("/sweep", response_model=SweepSummaryResponse)
async def sweep(gateway: NotificationGateway = Depends(get_gateway)) -> SweepSummaryResponse:
    """Run one reminder sweep now (for external cron). Returns the per-run counts."""
    try:
        summary = await trigger_reminder_sweep(db.async_session_maker, gateway)
    except asyncio.TimeoutError as e:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Reminder sweep timed out",
        ) from e
    if summary is None:
        return SweepSummaryResponse(ran=False)
    return SweepSummaryResponse(ran=True, **summary.as_dict())
