"""
Health Check Endpoints

Probes for load balancers and Kubernetes. The bookings database is a hard
dependency; Redis is not, because sessions survive on the in-process tier.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.core.conversation.dispatch import get_dispatcher
from app.infra.database import check_db_health
from app.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

VERSION = "1.0.0"

_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Record process start for uptime. Called once from the lifespan."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


async def _dependency_checks() -> dict[str, str]:
    """Database, Redis and session tier status as short strings."""
    checks: dict[str, str] = {}

    try:
        checks["database"] = "ok" if await check_db_health() else "failed"
    except Exception as e:
        logger.error(f"Database health check error: {e}")
        checks["database"] = "error"

    try:
        checks["redis"] = "ok" if await check_redis_health() else "failed"
    except Exception as e:
        logger.error(f"Redis health check error: {e}")
        checks["redis"] = "error"

    checks["sessions"] = get_dispatcher().sessions.status()["tier"]
    return checks


class HealthResponse(BaseModel):
    """Process is up."""
    status: str
    timestamp: datetime
    version: str
    environment: str
    shop: str


class ReadyResponse(BaseModel):
    """Dependency status."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


class LiveResponse(BaseModel):
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


class DetailedHealthResponse(BaseModel):
    """Dependency status plus non-secret configuration."""
    status: str
    timestamp: datetime
    version: str
    uptime_seconds: Optional[float]
    checks: dict[str, str]
    config: dict[str, str]


@router.get(
    "",
    response_model=HealthResponse,
    summary="Basic health check",
    description="Returns 200 while the process is running. Does not touch dependencies.",
)
async def health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        environment=settings.app_env,
        shop=settings.shop_name,
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    description=(
        "Returns 503 when the bookings database is unreachable. "
        "Redis being down is reported but only degrades the session store."
    ),
    responses={503: {"description": "Bookings database unavailable"}},
)
async def ready() -> ReadyResponse:
    """Readiness for traffic: can we read and write bookings?"""
    checks = await _dependency_checks()
    if checks["redis"] != "ok":
        logger.warning(f"Readiness: Redis {checks['redis']}, sessions on {checks['sessions']} tier")

    result = ReadyResponse(
        status="ready" if checks["database"] == "ok" else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )

    if checks["database"] != "ok":
        logger.warning("Readiness: bookings database unavailable")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=result.model_dump(mode="json"),
        )
    return result


@router.get(
    "/live",
    response_model=LiveResponse,
    summary="Liveness probe",
    description="Returns 200 while the process is alive.",
)
async def live() -> LiveResponse:
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health check",
    description="Dependency status and shop configuration. Development only.",
    include_in_schema=settings.is_development,
)
async def detailed() -> DetailedHealthResponse:
    if not settings.is_development:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    checks = await _dependency_checks()
    sessions = get_dispatcher().sessions.status()

    config = {
        "environment": settings.app_env,
        "shop_name": settings.shop_name,
        "shop_timezone": settings.shop_timezone,
        "shop_hours": f"{settings.opening_time:%H:%M}-{settings.closing_time:%H:%M}",
        "closed_days": ",".join(settings.closed_days_list),
        "booking_horizon_days": str(settings.booking_horizon_days),
        "fallback_sessions": str(sessions["fallback_entries"]),
        "outbound_channel": "twilio" if settings.twilio_configured else "log-only",
    }

    healthy = checks["database"] == "ok" and checks["redis"] == "ok"
    return DetailedHealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        uptime_seconds=get_uptime_seconds(),
        checks=checks,
        config=config,
    )
