import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.deps import status_code_for
from app.api.routes import appointments, reminders, schedule, slots
from app.core.config import settings, _ENV_FILE
from app.core.db import async_database_url, async_session_maker, init_db
from app.core.errors import SchedulingError
from app.services.reminder_service import trigger_reminder_sweep
from app.services.whatsapp_service import WhatsAppGateway

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


async def _run_reminder_sweep() -> None:
    """One sweep; any failure is logged so the loop keeps running."""
    try:
        summary = await trigger_reminder_sweep(async_session_maker, WhatsAppGateway.from_settings())
        if summary and (summary.errors or any(summary.sent.values())):
            logger.info("Reminder sweep: %s", summary.as_dict())
    except asyncio.TimeoutError:
        logger.error("Reminder sweep exceeded %ds and was cancelled", settings.reminder_sweep_timeout_seconds)
    except Exception as e:
        logger.exception("Reminder sweep failed: %s", e)


async def _reminder_loop() -> None:
    while True:
        await _run_reminder_sweep()
        await asyncio.sleep(settings.reminder_sweep_interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _startup_log()
    if async_database_url.startswith("sqlite"):
        # Local runs without Alembic
        await init_db()
    task = None
    if settings.reminder_sweep_enabled:
        # Background: sweep every reminder_sweep_interval_seconds
        task = asyncio.create_task(_reminder_loop())
    yield
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title="Booking Scheduler API",
    description="Scheduling core: availability, appointment lifecycle, WhatsApp reminders",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(slots.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(schedule.router, prefix="/api/v1")
app.include_router(reminders.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(SchedulingError)
async def scheduling_exception_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code_for(exc),
        content={"detail": str(exc)},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return actual error in JSON; include CORS so 500 responses are not blocked by browser."""
    origin = request.headers.get("origin")
    headers = _cors_headers(origin)
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    detail = f"{type(exc).__name__}: {str(exc)}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
        headers=headers,
    )


def _startup_log() -> None:
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info(
        "Reminder sweep: %s (every %ds, timeout %ds)",
        "enabled" if settings.reminder_sweep_enabled else "disabled",
        settings.reminder_sweep_interval_seconds,
        settings.reminder_sweep_timeout_seconds,
    )
    if settings.whatsapp_enabled:
        logger.info("WhatsApp gateway: configured")
    else:
        logger.warning(
            "WhatsApp gateway: NOT configured. Set WHATSAPP_INSTANCE_ID and WHATSAPP_TOKEN in %s",
            _ENV_FILE,
        )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
