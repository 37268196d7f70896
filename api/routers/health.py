"""Liveness and readiness checks.

``/health`` answers as long as the process is up. ``/ready`` checks what
the rating workflow needs: the database, and the counter store backing
the write rate limiter (Redis or in-process, whichever is configured).
"""

import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import text

from api.config import get_settings
from api.database import async_session_maker
from api.ratelimit import CounterStore

router = APIRouter(tags=["Health"])
logger = structlog.get_logger(__name__)

_started_at = time.time()


class HealthResponse(BaseModel):
    """Liveness response."""

    status: str = Field(..., description="healthy, degraded or unhealthy")
    timestamp: str
    version: str
    uptime_seconds: int


class DependencyCheck(BaseModel):
    """Result of probing one dependency."""

    status: str = Field(..., description="healthy or unhealthy")
    backend: str | None = None
    latency_ms: float | None = None
    error: str | None = None


class ReadyResponse(HealthResponse):
    """Readiness response with per-dependency results."""

    checks: dict[str, DependencyCheck]


class ApiInfoResponse(BaseModel):
    name: str
    version: str
    env: str
    docs: str | None


def _uptime() -> int:
    return int(time.time() - _started_at)


async def _check_dependency(
    name: str, check: Callable[[], Awaitable[object]], backend: str | None = None
) -> DependencyCheck:
    start = time.perf_counter()
    try:
        await check()
    except Exception as e:
        logger.warning("readiness_check_failed", dependency=name, error=str(e))
        return DependencyCheck(status="unhealthy", backend=backend, error=str(e))
    return DependencyCheck(
        status="healthy",
        backend=backend,
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
    )


async def _ping_database() -> None:
    async with async_session_maker() as session:
        await session.execute(text("SELECT 1"))


def readiness_status(checks: dict[str, DependencyCheck]) -> str:
    """Database down means unhealthy; a failing rate-limit store only degrades writes."""
    if checks["database"].status != "healthy":
        return "unhealthy"
    if any(check.status != "healthy" for check in checks.values()):
        return "degraded"
    return "healthy"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Process liveness; touches no dependencies."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC).isoformat(),
        version=get_settings().app_version,
        uptime_seconds=_uptime(),
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    responses={503: {"model": ReadyResponse, "description": "Database unavailable"}},
)
async def readiness_check(request: Request) -> ReadyResponse | ORJSONResponse:
    """Readiness for traffic. Returns 503 while the database is unreachable."""
    store: CounterStore = request.app.state.counter_store
    checks = {
        "database": await _check_dependency("database", _ping_database, backend="postgresql"),
        "rate_limit_store": await _check_dependency("rate_limit_store", store.ping, backend=store.backend),
    }
    response = ReadyResponse(
        status=readiness_status(checks),
        timestamp=datetime.now(UTC).isoformat(),
        version=get_settings().app_version,
        uptime_seconds=_uptime(),
        checks=checks,
    )
    if response.status == "unhealthy":
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(),
        )
    return response


@router.get("/", response_model=ApiInfoResponse)
async def root() -> ApiInfoResponse:
    settings = get_settings()
    return ApiInfoResponse(
        name="Perfboard API",
        version=settings.app_version,
        env=settings.env,
        docs="/docs" if settings.debug else None,
    )
