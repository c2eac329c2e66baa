"""Rate limiting for the service.

In-memory token bucket admission control, one bucket per client key.
Two limiter instances are used: a coarse global one applied by
``RateLimitMiddleware`` to every request, and a stricter one applied to
``POST /api/generate`` through the ``enforce_generate_rate_limit``
dependency.

This is single-process and best-effort. Several instances behind a load
balancer each keep their own bucket table.
"""

import asyncio
import hashlib
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from buttonsynth.app.core.config import settings
from buttonsynth.app.core.logging import get_logger
from buttonsynth.app.exceptions import RateLimitError

logger = get_logger(__name__)


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # Seconds until the bucket is full again
    retry_after: Optional[int] = None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_after),
        }


@dataclass
class TokenBucket:
    """Token bucket state for one client key."""
    tokens: float
    updated_at_ms: int


class InMemoryRateLimiter:
    """In-memory token bucket rate limiter.

    Buckets are created lazily, refilled lazily at request time and
    removed by ``cleanup()`` once idle for ``ttl_windows`` windows. The
    table never holds more than ``max_buckets`` keys; new keys beyond
    that are rejected instead of evicting active clients.
    """

    def __init__(
        self,
        capacity: int = 60,
        window_seconds: int = 60,
        max_buckets: int = 50_000,
        ttl_windows: int = 5,
        clock: Callable[[], int] = _monotonic_ms,
        name: str = "default",
    ):
        """Initialize rate limiter.

        Args:
            capacity: Maximum tokens per bucket (requests per window)
            window_seconds: Time for an empty bucket to refill completely
            max_buckets: Hard cap on the number of tracked keys
            ttl_windows: Idle windows after which a bucket is swept
            clock: Millisecond clock, injectable for tests
            name: Label used in log messages
        """
        self.capacity = capacity
        self.window_ms = window_seconds * 1000
        self.max_buckets = max_buckets
        self.ttl_ms = self.window_ms * ttl_windows
        self.name = name
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = asyncio.Lock()

    @property
    def refill_rate(self) -> float:
        """Tokens added per millisecond."""
        return self.capacity / self.window_ms

    @property
    def window_seconds(self) -> int:
        return self.window_ms // 1000

    def __len__(self) -> int:
        return len(self._buckets)

    def _seconds_until(self, tokens_needed: float) -> int:
        # Same as tokens_needed / refill_rate / 1000, without the rounding error
        return math.ceil(tokens_needed * self.window_ms / self.capacity / 1000)

    async def is_allowed(self, key: str) -> RateLimitResult:
        """Spend one token from ``key``'s bucket if one is available."""
        async with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)

            if bucket is None:
                if len(self._buckets) >= self.max_buckets:
                    logger.warning(
                        f"Rate limiter '{self.name}' bucket table full, rejecting new key",
                        extra={"client_key": key, "buckets": len(self._buckets)},
                    )
                    return RateLimitResult(
                        allowed=False,
                        limit=self.capacity,
                        remaining=0,
                        reset_after=self.window_seconds,
                        retry_after=self.window_seconds,
                    )
                bucket = TokenBucket(tokens=float(self.capacity), updated_at_ms=now)
                self._buckets[key] = bucket

            elapsed = max(0, now - bucket.updated_at_ms)
            bucket.tokens = min(self.capacity, bucket.tokens + elapsed * self.refill_rate)
            bucket.updated_at_ms = now

            if bucket.tokens < 1:
                return RateLimitResult(
                    allowed=False,
                    limit=self.capacity,
                    remaining=0,
                    reset_after=self._seconds_until(self.capacity - bucket.tokens),
                    retry_after=self._seconds_until(1 - bucket.tokens),
                )

            bucket.tokens -= 1
            return RateLimitResult(
                allowed=True,
                limit=self.capacity,
                remaining=math.floor(bucket.tokens),
                reset_after=self._seconds_until(self.capacity - bucket.tokens),
            )

    async def cleanup(self) -> int:
        """Remove buckets idle for longer than the TTL.

        Returns:
            Number of buckets removed
        """
        async with self._lock:
            now = self._clock()
            expired = [
                key for key, bucket in self._buckets.items()
                if now - bucket.updated_at_ms > self.ttl_ms
            ]
            for key in expired:
                del self._buckets[key]
        if expired:
            logger.debug(f"Rate limiter '{self.name}' swept {len(expired)} idle buckets")
        return len(expired)


class RateLimitSweeper:
    """Background task that periodically sweeps idle buckets.

    Usage:
        sweeper = RateLimitSweeper([global_limiter, generate_limiter])
        await sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(self, limiters: List[InMemoryRateLimiter], interval: Optional[float] = None):
        self._limiters = limiters
        if interval is None:
            interval = min([lim.window_seconds for lim in limiters] + [60])
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None

    async def sweep(self) -> int:
        removed = 0
        for limiter in self._limiters:
            removed += await limiter.cleanup()
        return removed

    async def start(self) -> None:
        if self._task is not None:
            logger.debug("Rate limit sweeper already running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started rate limit sweeper (interval: {self._interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Rate limit sweeper did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            logger.info("Stopped rate limit sweeper")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                # Interval elapsed
                try:
                    await self.sweep()
                except Exception as e:
                    logger.error(f"Error during rate limit sweep: {e}")


def get_client_key(request: Request, trust_forwarded: Optional[bool] = None) -> str:
    """Get rate limit key for the request.

    Uses the socket peer address. When forwarded headers are trusted, the
    rightmost X-Forwarded-For entry is used instead: it is the one the
    proxy appended, every entry left of it is written by the client. The
    address is hashed so raw IPs are not kept in memory or written to logs.
    """
    if trust_forwarded is None:
        trust_forwarded = settings.rate_limit_trust_forwarded

    client_ip = ""
    if trust_forwarded:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[-1].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"

    ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:32]
    return f"ratelimit:ip:{ip_hash}"


def rate_limited_response(
    retry_after: int,
    limit: int,
    reset_after: Optional[int] = None,
    message: str = "Too Many Requests",
) -> JSONResponse:
    """Build the 429 response sent when a bucket is empty.

    ``RateLimit-Reset`` is the time until the bucket is full, as on
    admitted requests; ``Retry-After`` is the time until one token.
    """
    return JSONResponse(
        status_code=429,
        content={"ok": False, "error": message},
        headers={
            "RateLimit-Limit": str(limit),
            "RateLimit-Remaining": "0",
            "RateLimit-Reset": str(reset_after if reset_after is not None else retry_after),
            "Retry-After": str(retry_after),
        },
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware applying the global limiter to every request.

    Headers already set by a route-level limiter are left alone, so the
    stricter limit is what the client sees on those routes.
    """

    def __init__(self, app, limiter: InMemoryRateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        key = get_client_key(request)
        result = await self.limiter.is_allowed(key)

        if not result.allowed:
            logger.warning(
                "Global rate limit exceeded",
                extra={"client_key": key, "path": request.url.path, "retry_after": result.retry_after},
            )
            return rate_limited_response(
                result.retry_after or self.limiter.window_seconds,
                result.limit,
                result.reset_after,
            )

        response = await call_next(request)

        for name, value in result.headers.items():
            response.headers.setdefault(name, value)

        return response


async def enforce_generate_rate_limit(request: Request, response: Response) -> RateLimitResult:
    """FastAPI dependency applying the generation limiter.

    Raises:
        RateLimitError: If the client's generation bucket is empty
    """
    limiter: InMemoryRateLimiter = request.app.state.generate_limiter
    key = get_client_key(request)
    result = await limiter.is_allowed(key)

    if not result.allowed:
        logger.warning(
            "Generation rate limit exceeded",
            extra={"client_key": key, "retry_after": result.retry_after},
        )
        raise RateLimitError(
            retry_after=result.retry_after or limiter.window_seconds,
            limit=result.limit,
            reset_after=result.reset_after,
        )

    for name, value in result.headers.items():
        response.headers[name] = value
    return result
