"""Request context middleware: request id, timing, access log and rate limiting.

Everything happens in one pass. The token bucket arithmetic lives in the pure
function ``consume_token`` so it can be tested without a clock or a server.
"""

import logging
import threading
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..core.config import settings
from ..core.logging_config import request_id_var

logger = logging.getLogger(__name__)

# Bucket state per client: (tokens_left, last_seen_monotonic)
BucketState = tuple[float, float]

WINDOW_SECONDS = 60.0


def consume_token(
    state: Optional[BucketState],
    capacity: int,
    now: float,
    window: float = WINDOW_SECONDS,
) -> tuple[BucketState, bool, float]:
    """Take one token from a bucket refilling *capacity* tokens per *window*.

    Returns ``(new_state, allowed, retry_after_seconds)``. A missing state
    is a full bucket. ``capacity <= 0`` disables limiting.
    """
    if capacity <= 0:
        return (0.0, now), True, 0.0

    refill_per_second = capacity / window
    if state is None:
        tokens = float(capacity)
    else:
        tokens, last_seen = state
        tokens = min(float(capacity), tokens + (now - last_seen) * refill_per_second)

    if tokens >= 1.0:
        return (tokens - 1.0, now), True, 0.0
    return (tokens, now), False, (1.0 - tokens) / refill_per_second


class RateLimiter:
    """Thread-safe map of client buckets with periodic eviction of idle ones."""

    EVICT_EVERY = 500
    IDLE_AFTER = 2 * WINDOW_SECONDS

    def __init__(self):
        self._buckets: dict[str, BucketState] = {}
        self._lock = threading.Lock()
        self._calls = 0

    def hit(self, key: str, capacity: int, now: Optional[float] = None) -> tuple[bool, float]:
        if now is None:
            now = time.monotonic()
        with self._lock:
            self._calls += 1
            if self._calls % self.EVICT_EVERY == 0:
                self._evict(now)
            state, allowed, retry_after = consume_token(self._buckets.get(key), capacity, now)
            self._buckets[key] = state
        return allowed, retry_after

    def _evict(self, now: float) -> None:
        cutoff = now - self.IDLE_AFTER
        for key in [k for k, (_, seen) in self._buckets.items() if seen < cutoff]:
            del self._buckets[key]

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    def __len__(self) -> int:
        return len(self._buckets)


rate_limiter = RateLimiter()

# Health checks and docs are never throttled.
_EXEMPT_PATHS = frozenset({"/", "/health", "/docs", "/redoc", "/openapi.json"})


def client_ip(request: Request) -> Optional[str]:
    """First ``X-Forwarded-For`` hop when proxied, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Single middleware handling request id, timing, logging and rate limiting."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        token = request_id_var.set(rid)
        try:
            if request.url.path not in _EXEMPT_PATHS:
                key = client_ip(request) or "unknown"
                allowed, retry_after = rate_limiter.hit(key, settings.rate_limit_per_minute)
                if not allowed:
                    logger.warning(
                        "Rate limit exceeded",
                        extra={"client": key, "path": request.url.path, "retry_after": round(retry_after, 1)},
                    )
                    return JSONResponse(
                        status_code=429,
                        content={
                            "error": "RATE_LIMITED",
                            "message": "Too many requests",
                            "details": {"retry_after": round(retry_after, 1)},
                        },
                        headers={"Retry-After": str(int(retry_after) + 1), "X-Request-ID": rid},
                    )

            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            response.headers["X-Request-ID"] = rid
            response.headers["X-Response-Time"] = f"{duration_ms}ms"

            logger.info(
                f"{request.method} {request.url.path} {response.status_code}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            return response
        finally:
            request_id_var.reset(token)
