from datetime import time

from sqlmodel import Field, SQLModel


class WorkingHours(SQLModel, table=True):
    __tablename__ = "working_hours"
    id: int | None = Field(default=None, primary_key=True)
    professional_id: int = Field(index=True)
    weekday: int  # 0 = Sunday ... 6 = Saturday
    start_time: time
    end_time: time
    active: bool = True


class WorkingHoursInput(SQLModel):
    weekday: int
    start_time: time
    end_time: time
    active: bool = True


class WorkingHoursPublic(SQLModel):
    id: int
    professional_id: int
    weekday: int
    start_time: time
    end_time: time
    active: bool
