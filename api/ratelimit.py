"""Fixed-window rate limiting over a pluggable counter store.

The limiter owns no global state: counters live in a ``CounterStore``
handed to it, in-process for a single instance or Redis when several
API processes share limits.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from redis.asyncio import Redis

from api.config import Settings
from api.exceptions import RateLimitError

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitConfig:
    """At most ``max_requests`` per ``window_seconds`` per identifier."""

    max_requests: int
    window_seconds: int


@dataclass
class RateLimitResult:
    success: bool
    remaining: int
    reset_at: float  # Unix timestamp when the window resets

    def retry_after(self, now: float | None = None) -> int:
        """Whole seconds until the window resets (at least 1)."""
        now = time.time() if now is None else now
        return max(1, int(self.reset_at - now + 0.999))


class CounterStore(ABC):
    """Storage for per-key request counters."""

    backend = "abstract"

    @abstractmethod
    async def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        """Count one request for ``key``.

        Opens a new window if none is active. Returns the count within
        the current window (including this hit) and the window reset time.
        """

    async def ping(self) -> bool:
        """True when the store can take hits."""
        return True


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryCounterStore(CounterStore):
    """Per-process counters, expired windows swept on access."""

    backend = "memory"

    def __init__(self, clock: Clock = time.time, sweep_interval: float = 300.0) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._windows: dict[str, _Window] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._windows)

    async def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        now = self._clock()
        self._maybe_sweep(now)

        window = self._windows.get(key)
        if window is None or window.reset_at <= now:
            window = _Window(count=0, reset_at=now + window_seconds)
            self._windows[key] = window

        window.count += 1
        return window.count, window.reset_at

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval:
            return
        expired = [key for key, w in self._windows.items() if w.reset_at <= now]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now


class RedisCounterStore(CounterStore):
    """Counters shared across processes via Redis keys with a TTL."""

    backend = "redis"

    def __init__(self, redis: Redis, prefix: str = "perfboard:ratelimit:", clock: Clock = time.time):
        self.redis = redis
        self.prefix = prefix
        self._clock = clock

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        redis_key = f"{self.prefix}{key}"
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(redis_key, 0, px=window_seconds * 1000, nx=True)
            pipe.incr(redis_key)
            pipe.pttl(redis_key)
            _, count, ttl_ms = await pipe.execute()

        if ttl_ms is None or ttl_ms < 0:
            ttl_ms = window_seconds * 1000
        return int(count), self._clock() + ttl_ms / 1000


class RateLimiter:
    """Applies one rate limit configuration to identifiers."""

    def __init__(self, store: CounterStore, config: RateLimitConfig, name: str = "default"):
        self.store = store
        self.config = config
        self.name = name

    async def check(self, identifier: str) -> RateLimitResult:
        count, reset_at = await self.store.hit(
            f"{self.name}:{identifier}", self.config.window_seconds
        )
        if count > self.config.max_requests:
            return RateLimitResult(success=False, remaining=0, reset_at=reset_at)
        return RateLimitResult(
            success=True,
            remaining=self.config.max_requests - count,
            reset_at=reset_at,
        )

    async def enforce(self, identifier: str) -> RateLimitResult:
        """Like ``check`` but raises RateLimitError when the limit is hit."""
        result = await self.check(identifier)
        if not result.success:
            logger.warning("rate_limit_exceeded", limiter=self.name, identifier=identifier)
            raise RateLimitError(retry_after=result.retry_after())
        return result


def rate_limit_configs(settings: Settings) -> dict[str, RateLimitConfig]:
    """Named limits from settings."""
    return {
        "rating_writes": RateLimitConfig(
            settings.rate_limit_rating_writes_max,
            settings.rate_limit_rating_writes_window_seconds,
        ),
    }


def build_counter_store(settings: Settings) -> CounterStore:
    """Counter store for the configured backend."""
    if settings.rate_limit_backend == "redis":
        return RedisCounterStore(Redis.from_url(str(settings.redis_url), decode_responses=True))
    return InMemoryCounterStore()
