"""HTTP middleware: rate limiting, request logging and security headers."""

import logging
import time

import redis.asyncio as redis
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from marketplace.config import settings
from marketplace.core.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
UNLIMITED_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")


def _redis_client() -> redis.Redis:
    return redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


async def sliding_window_hit(client: redis.Redis, key: str, now: int) -> int:
    """Record a hit on ``key`` and return the hits already in the window."""
    async with client.pipeline(transaction=True) as pipe:
        await pipe.zremrangebyscore(key, 0, now - WINDOW_SECONDS)
        await pipe.zcard(key)
        await pipe.zadd(key, {str(time.time_ns()): now})
        await pipe.expire(key, WINDOW_SECONDS)
        results = await pipe.execute()
    return results[1]


def client_ip(request: Request) -> str:
    """Extract client IP, honouring proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP rate limiting using a Redis sliding window.

    Requests pass through unthrottled when Redis is unreachable.
    """

    def __init__(self, app, requests_per_minute: int = 100) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self._redis: redis.Redis | None = None

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in UNLIMITED_PATHS or settings.debug:
            return await call_next(request)

        if self._redis is None:
            self._redis = _redis_client()

        now = int(time.time())
        try:
            count = await sliding_window_hit(self._redis, f"rate_limit:{client_ip(request)}", now)
        except redis.RedisError as e:
            logger.warning("Rate limiter unavailable, allowing request: %s", e)
            return await call_next(request)

        headers = {
            "X-RateLimit-Limit": str(self.requests_per_minute),
            "X-RateLimit-Reset": str(now + WINDOW_SECONDS),
        }
        if count >= self.requests_per_minute:
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Too many requests. Please try again later.",
                    "retry_after": WINDOW_SECONDS,
                },
                headers={**headers, "Retry-After": str(WINDOW_SECONDS), "X-RateLimit-Remaining": "0"},
            )

        response = await call_next(request)
        response.headers.update(headers)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.requests_per_minute - count - 1))
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag responses with a request id and timing; log slow requests."""

    slow_request_seconds = 1.0

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.perf_counter()

        request_id = request.headers.get("X-Request-ID") or str(time.time_ns())
        request.state.request_id = request_id

        response = await call_next(request)
        duration = time.perf_counter() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        if duration > self.slow_request_seconds:
            logger.warning(
                "Slow request %s %s took %.3fs (request_id=%s)",
                request.method,
                request.url.path,
                duration,
                request_id,
            )
        else:
            logger.debug(
                "%s %s -> %s in %.3fs",
                request.method,
                request.url.path,
                response.status_code,
                duration,
            )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if not settings.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class RateLimiter:
    """Per-endpoint rate limit, used as a FastAPI dependency."""

    def __init__(self, requests_per_minute: int = 10, key_prefix: str = "api") -> None:
        self.requests_per_minute = requests_per_minute
        self.key_prefix = key_prefix
        self._redis: redis.Redis | None = None

    async def __call__(self, request: Request) -> None:
        """Raise RateLimitExceeded once the caller is over the limit."""
        if self._redis is None:
            self._redis = _redis_client()

        key = f"rate:{self.key_prefix}:{client_ip(request)}"
        try:
            count = await sliding_window_hit(self._redis, key, int(time.time()))
        except redis.RedisError as e:
            logger.warning("Rate limiter '%s' unavailable: %s", self.key_prefix, e)
            return

        if count >= self.requests_per_minute:
            logger.info("Rate limit hit on '%s' for %s", self.key_prefix, key)
            raise RateLimitExceeded()


booking_limiter = RateLimiter(requests_per_minute=10, key_prefix="booking")
