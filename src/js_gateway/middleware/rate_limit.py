"""Fixed-window rate limiting on Redis (INCR + EXPIRE).

Two users:
  - FixedWindowRateLimiter.hit() is called by the webhook service once the
    sender's phone number is known (per-sender limit).
  - RateLimitMiddleware guards the operator login endpoint per client IP.

Key pattern: "ratelimit:{scope}:{subject}". The window starts on the first
hit; a limited caller gets RateLimitError (9001) / HTTP 429 with Retry-After.
"""

import logging
from collections.abc import Awaitable, Callable

import redis.asyncio as aioredis
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.js_common.errors import RateLimitError
from src.js_common.redis_client import get_redis
from src.js_common.response import error_response

logger = logging.getLogger(__name__)

RedisFactory = Callable[[], Awaitable[aioredis.Redis]]


class FixedWindowRateLimiter:
    def __init__(self, redis_factory: RedisFactory = get_redis, window_seconds: int = 60) -> None:
        self._redis_factory = redis_factory
        self._window = window_seconds

    async def hit(self, scope: str, subject: str, limit: int) -> int:
        """Count one request; raise RateLimitError once `limit` is exceeded."""
        redis = await self._redis_factory()
        key = f"ratelimit:{scope}:{subject}"
        count = int(await redis.incr(key))
        if count == 1:
            await redis.expire(key, self._window)
        if count > limit:
            logger.warning("Rate limit hit scope=%s subject=%s count=%d", scope, subject, count)
            raise RateLimitError()
        return count


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP limit on selected paths (login brute-force protection)."""

    def __init__(
        self,
        app: object,
        paths: dict[str, int] | None = None,
        limiter: FixedWindowRateLimiter | None = None,
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._paths = paths or {"/api/v1/auth/login": 5}
        self._limiter = limiter or FixedWindowRateLimiter()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        limit = self._paths.get(request.url.path)
        if limit is not None:
            try:
                await self._limiter.hit(request.url.path, client_ip(request), limit)
            except RateLimitError as exc:
                return JSONResponse(
                    status_code=exc.http_status,
                    content=error_response(exc.code, exc.message).model_dump(),
                    headers={"Retry-After": "60"},
                )
        return await call_next(request)
