from datetime import datetime
from zoneinfo import ZoneInfo

from app.core.config import settings


def shop_now() -> datetime:
    """Naive wall-clock 'now' in the shop timezone, comparable with stored columns."""
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def to_shop_naive(dt: datetime) -> datetime:
    """Convert an aware datetime to naive shop time; naive values are assumed to be shop time already."""
    if dt.tzinfo is not None:
        return dt.astimezone(ZoneInfo(settings.timezone)).replace(tzinfo=None)
    return dt
