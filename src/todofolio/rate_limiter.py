"""
Per-client rate limiting.

Each client address gets a token bucket holding ``max_requests`` tokens
that refill evenly over ``window_seconds``. A request that finds its
bucket empty is answered with 429 and the standard error envelope.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import get_logger
from .utils import error_envelope

logger = get_logger(__name__)

# Health endpoints stay reachable for monitoring.
EXEMPT_PATHS = ("/", "/api/v1/health")

Clock = Callable[[], float]


@dataclass
class RateLimitBucket:
    """Token bucket for one client."""

    capacity: int
    refill_rate: float  # tokens per second
    clock: Clock = time.monotonic
    tokens: float = field(init=False)
    last_refill: float = field(init=False)

    def __post_init__(self) -> None:
        self.tokens = float(self.capacity)
        self.last_refill = self.clock()

    def refill(self) -> None:
        now = self.clock()
        elapsed = now - self.last_refill
        self.tokens = min(float(self.capacity), self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def consume(self, tokens: int = 1) -> bool:
        """Take ``tokens`` from the bucket; False when there are not enough."""
        self.refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def get_wait_time(self, tokens: int = 1) -> float:
        """Seconds until ``tokens`` are available."""
        self.refill()
        if self.tokens >= tokens:
            return 0.0
        return (tokens - self.tokens) / self.refill_rate


# PUBLIC_INTERFACE
class RateLimiter:
    """
    Token bucket rate limiter keyed by client id.

    Args:
        max_requests: Requests a client may burst, and the number that
            refill over one window.
        window_seconds: Length of the window in seconds.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(self, max_requests: int = 100, window_seconds: int = 900, clock: Clock = time.monotonic) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.refill_rate = max_requests / float(window_seconds)
        self.clock = clock
        self._buckets: Dict[str, RateLimitBucket] = {}
        self._lock = Lock()

    def _get_bucket(self, client_id: str) -> RateLimitBucket:
        bucket = self._buckets.get(client_id)
        if bucket is None:
            bucket = RateLimitBucket(capacity=self.max_requests, refill_rate=self.refill_rate, clock=self.clock)
            self._buckets[client_id] = bucket
        return bucket

    def check(self, client_id: str) -> Tuple[bool, Optional[float], int]:
        """
        Count one request for ``client_id``.

        Returns:
            (allowed, retry_after_seconds, remaining_requests)
        """
        with self._lock:
            bucket = self._get_bucket(client_id)
            if bucket.consume():
                return True, None, int(bucket.tokens)
            return False, bucket.get_wait_time(), 0

    def cleanup_stale_buckets(self, max_age: Optional[float] = None) -> int:
        """Drop buckets of clients not seen for ``max_age`` seconds (one window by default)."""
        max_age = self.window_seconds if max_age is None else max_age
        now = self.clock()
        with self._lock:
            stale = [cid for cid, b in self._buckets.items() if now - b.last_refill > max_age]
            for cid in stale:
                del self._buckets[cid]
        if stale:
            logger.debug("rate_limit_buckets_cleaned", count=len(stale))
        return len(stale)


# PUBLIC_INTERFACE
class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply a per-client-address limit to every route except the health endpoints."""

    def __init__(self, app, limiter: RateLimiter, cleanup_interval: float = 300.0) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.cleanup_interval = cleanup_interval
        self._last_cleanup = limiter.clock()

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in EXEMPT_PATHS or path.startswith("/api/v1/health/"):
            return await call_next(request)

        client_id = request.client.host if request.client else "unknown"
        allowed, retry_after, remaining = self.limiter.check(client_id)

        now = self.limiter.clock()
        if now - self._last_cleanup > self.cleanup_interval:
            self.limiter.cleanup_stale_buckets()
            self._last_cleanup = now

        limit = str(self.limiter.max_requests)
        if not allowed:
            retry = max(1, math.ceil(retry_after or 0))
            logger.warning("rate_limit_exceeded", client=client_id, method=request.method, retry_after=retry)
            window_minutes = self.limiter.window_seconds / 60
            return JSONResponse(
                status_code=429,
                content=error_envelope(
                    "Too many requests from this IP, please try again later.",
                    "RATE_LIMIT_EXCEEDED",
                    {
                        "limit": self.limiter.max_requests,
                        "window_minutes": window_minutes,
                        "retry_after": retry,
                    },
                    getattr(request.state, "request_id", None),
                ),
                headers={"Retry-After": str(retry), "X-RateLimit-Limit": limit, "X-RateLimit-Remaining": "0"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = limit
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
