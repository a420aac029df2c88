from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.core.config import settings


def _async_database_url(url: str) -> tuple[str, dict]:
    """Return (async url, engine kwargs) for the configured database.

    asyncpg does not accept psycopg params like sslmode/channel_binding, so they are
    stripped and SSL is enabled via connect_args instead. SQLite (used in tests and
    local runs) goes through aiosqlite with the default pool.
    """
    parsed = urlparse(url)
    if parsed.scheme in ("postgresql", "postgres", "postgresql+asyncpg"):
        query = parse_qs(parsed.query, keep_blank_values=True)
        wants_ssl = query.pop("sslmode", ["disable"])[0] not in ("disable", "allow")
        query.pop("channel_binding", None)
        new_query = urlencode(query, doseq=True)
        async_url = urlunparse(
            ("postgresql+asyncpg", parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment)
        )
        kwargs: dict = {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}
        if wants_ssl:
            kwargs["connect_args"] = {"ssl": True}
        return async_url, kwargs
    if parsed.scheme == "sqlite":
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1), {}
    return url, {}


async_database_url, _engine_kwargs = _async_database_url(settings.database_url)

engine = create_async_engine(
    async_database_url,
    echo=settings.env == "development",
    **_engine_kwargs,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create tables if using create_all; prefer Alembic in production."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
