from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.core.clock import shop_now


class BlockedInterval(SQLModel, table=True):
    __tablename__ = "blocked_intervals"
    id: int | None = Field(default=None, primary_key=True)
    professional_id: int = Field(index=True)
    start_time: datetime = Field(sa_type=DateTime(), index=True)
    end_time: datetime = Field(sa_type=DateTime())
    reason: str | None = None
    created_at: datetime = Field(default_factory=shop_now, sa_type=DateTime())


class BlockedIntervalCreate(SQLModel):
    professional_id: int
    start_time: datetime
    end_time: datetime
    reason: str | None = None


class BlockedIntervalPublic(SQLModel):
    id: int
    professional_id: int
    start_time: datetime
    end_time: datetime
    reason: str | None = None
