from datetime import datetime

from pydantic import BaseModel


class SweepSummaryResponse(BaseModel):
    ran: bool
    processed: int = 0
    sent: dict[str, int] = {}
    skipped: int = 0
    errors: int = 0
    started_at: datetime | None = None
