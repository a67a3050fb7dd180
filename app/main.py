"""
Chair Booking API

FastAPI entry point: inbound message webhook, session administration and
health probes around the booking dialogue.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.routes import health, webhook
from app.config import settings
from app.infra.database import async_session_factory, close_db, init_db
from app.infra.notifications import get_message_channel
from app.infra.redis import RedisClient
from app.infra.seed import seed_catalog

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging() -> None:
    """Root logging for the service; quiet chatty libraries."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=LOG_FORMAT,
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )


logger = logging.getLogger(__name__)


async def _prepare_database() -> None:
    """Create tables and load the starter catalogue (development only)."""
    try:
        await init_db()
        seeded = await seed_catalog(async_session_factory)
        logger.info(f"Database ready{' and seeded' if seeded else ''}")
    except Exception as e:
        logger.warning(f"Database preparation skipped: {e}")


async def _probe_redis() -> None:
    try:
        if await RedisClient.get_client():
            logger.info("Redis reachable, sessions on the primary tier")
        else:
            logger.warning("Redis unreachable, sessions start on the in-process tier")
    except Exception as e:
        logger.warning(f"Redis probe failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start-up checks, then orderly release of clients on shutdown."""
    setup_logging()
    logger.info(f"Starting {settings.app_name} for {settings.shop_name} ({settings.app_env})")
    health.set_start_time()

    if settings.is_development:
        await _prepare_database()
    await _probe_redis()

    if not settings.twilio_configured:
        logger.warning("Twilio credentials not set, replies will only be logged")

    yield

    logger.info("Shutting down")
    await get_message_channel().close()
    await RedisClient.close()
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Chair Booking API",
    description="""
    Conversational appointment booking for barbershops.

    ## Features
    - 💬 Menu-driven booking over WhatsApp/SMS
    - 📅 Live availability per barber
    - 🎫 Booking codes for self-service cancellation
    - ⏰ Day-before and short-notice reminders
    """,
    version=health.VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    logger.warning(f"Rejected {request.method} {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Validation error", "detail": errors},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Last resort for errors that escaped the routes."""
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.is_development else "Internal server error",
        },
    )


@app.middleware("http")
async def request_timing_middleware(request: Request, call_next):
    """Debug-level request timing."""
    started = time.perf_counter()
    try:
        return await call_next(request)
    finally:
        if settings.debug:
            logger.debug(
                f"{request.method} {request.url.path} took "
                f"{(time.perf_counter() - started) * 1000:.1f} ms"
            )


app.include_router(health.router)
app.include_router(webhook.router)


@app.get("/", tags=["Root"])
async def root() -> dict:
    return {
        "name": settings.app_name,
        "shop": settings.shop_name,
        "version": health.VERSION,
        "status": "running",
        "environment": settings.app_env,
        "docs": "/docs" if settings.is_development else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
