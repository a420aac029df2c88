import os
from datetime import datetime, time

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("REMINDER_SWEEP_ENABLED", "false")

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.models  # noqa: E402,F401 - register tables
from app.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from app.models.working_hours import WorkingHours  # noqa: E402
from app.services.whatsapp_service import SendResult  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scheduling.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def add_working_hours(session):
    async def _add(professional_id: int, weekday: int, start: time, end: time, active: bool = True) -> WorkingHours:
        hours = WorkingHours(
            professional_id=professional_id, weekday=weekday, start_time=start, end_time=end, active=active
        )
        session.add(hours)
        await session.commit()
        return hours

    return _add


@pytest.fixture
def add_appointment(session):
    async def _add(
        professional_id: int,
        start: datetime,
        end: datetime,
        status: AppointmentStatus = AppointmentStatus.SCHEDULED,
        created_at: datetime | None = None,
        client_contact: str | None = "11 98765-4321",
        client_name: str | None = "Ana",
    ) -> Appointment:
        appointment = Appointment(
            professional_id=professional_id,
            start_time=start,
            end_time=end,
            status=status,
            client_name=client_name,
            client_contact=client_contact,
            created_at=created_at or start.replace(hour=0, minute=0),
            updated_at=created_at or start.replace(hour=0, minute=0),
        )
        session.add(appointment)
        await session.commit()
        await session.refresh(appointment)
        return appointment

    return _add


class FakeGateway:
    """Records every message; contacts in `failing` get a failed result, in `raising` an exception."""

    def __init__(
        self, failing: set[str] | None = None, raising: set[str] | None = None, configured: bool = True
    ) -> None:
        self.failing = failing or set()
        self.configured = configured
        self.raising = raising or set()
        self.messages: list[tuple[str, str]] = []

    async def send(self, contact: str, text: str) -> SendResult:
        self.messages.append((contact, text))
        if contact in self.raising:
            raise RuntimeError("connection reset")
        if contact in self.failing:
            return SendResult(ok=False, error="HTTP 500: upstream error")
        return SendResult(ok=True)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def make_gateway():
    return FakeGateway
