from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.db.redis import redis_client

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
EXEMPT_PREFIXES = ("/health", "/metrics", "/docs", "/openapi.json")


def client_key(request: Request) -> str:
    """Bucket by bearer token when one is presented, else by the first proxied address."""
    auth = (request.headers.get("authorization") or "").strip()
    if auth.lower().startswith("bearer ") and auth[7:].strip():
        return f"token:{auth[7:].strip()[-32:]}"

    for header in ("x-forwarded-for", "x-real-ip"):
        value = (request.headers.get(header) or "").strip()
        if value:
            return f"ip:{value.split(',')[0].strip()}"

    return f"ip:{request.client.host if request.client else 'unknown'}"


class RedisRateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window request counter per client kept in Redis.

    ``limit_per_minute <= 0`` disables limiting. When Redis cannot be reached the
    request is let through and a warning is logged.
    """

    def __init__(self, app, limit_per_minute: int | None = None):
        super().__init__(app)
        self.limit_per_minute = settings.rate_limit_per_minute if limit_per_minute is None else limit_per_minute

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable]):
        if self.limit_per_minute <= 0 or request.url.path.startswith(EXEMPT_PREFIXES):
            return await call_next(request)

        window = int(time.time() // WINDOW_SECONDS)
        key = f"library:rl:{client_key(request)}:{window}"

        try:
            count = await redis_client.incr(key)
            if count == 1:
                await redis_client.expire(key, WINDOW_SECONDS + 5)
        except Exception:
            logger.warning("Rate limiter unavailable, letting request through", exc_info=True)
            return await call_next(request)

        if count > self.limit_per_minute:
            logger.info("Rate limit hit for %s on %s", key, request.url.path)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded"},
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limit_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(self.limit_per_minute - count, 0))
        return response
