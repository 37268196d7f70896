"""Custom middleware for the API."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from api.ratelimit import RateLimiter, RateLimitResult

# Type alias for call_next function
CallNext = Callable[[Request], Awaitable[Response]]

logger = structlog.get_logger()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID to each request for tracing."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        # Bind request ID to structlog context
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class IdentityMiddleware(BaseHTTPMiddleware):
    """Copy the gateway-authenticated user id onto request state."""

    def __init__(self, app: Any, header_name: str) -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        user_id = request.headers.get(self.header_name)
        if user_id:
            request.state.user_id = user_id.strip()
            structlog.contextvars.bind_contextvars(user_id=request.state.user_id)
        return await call_next(request)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log request/response details."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            query=str(request.query_params) if request.query_params else None,
        )

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Limit rating workflow writes per acting user (or client IP)."""

    WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

    # Path prefixes covered by the limiter
    LIMITED_PREFIXES = ("/v1/ratings", "/v1/change-requests")

    def __init__(self, app: Any, limiter: RateLimiter, enabled: bool = True) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.enabled = enabled

    def is_limited(self, request: Request) -> bool:
        return request.method in self.WRITE_METHODS and request.url.path.startswith(
            self.LIMITED_PREFIXES
        )

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        if not self.enabled or not self.is_limited(request):
            return await call_next(request)

        user_id = self._get_user_id(request)
        identifier = f"user:{user_id}" if user_id else f"ip:{self._get_client_ip(request)}"

        result = await self.limiter.check(identifier)
        if not result.success:
            logger.warning(
                "rate_limit_exceeded",
                identifier=identifier,
                path=request.url.path,
            )
            return self._rate_limit_response(result)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limiter.config.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return response

    def _get_client_ip(self, request: Request) -> str:
        """Get client IP, handling proxies."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            # First IP is the original client
            ip: str = forwarded.split(",")[0].strip()
            return ip
        return request.client.host if request.client else "unknown"

    def _get_user_id(self, request: Request) -> str | None:
        """User ID set on request state by the upstream auth layer."""
        user_id = getattr(request.state, "user_id", None)
        return str(user_id) if user_id else None

    def _rate_limit_response(self, result: RateLimitResult) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": {
                    "code": "rate_limit_exceeded",
                    "message": "Too many requests. Please try again later.",
                }
            },
            headers={"Retry-After": str(result.retry_after())},
        )
