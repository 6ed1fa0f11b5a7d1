"""Per-IP fixed-window request limiting backed by Redis counters."""

import time
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from retriever.redis_client import get_redis_or_none

logger = structlog.get_logger()

EXEMPT_PATHS = frozenset({"/health", "/ready"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Count requests per client IP in fixed windows of `window_seconds`.

    Liveness and readiness probes are never counted. Without Redis
    every request passes untouched.
    """

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    def _key(self, request: Request) -> str:
        client_ip = request.client.host if request.client else "unknown"
        return f"ratelimit:{client_ip}:{int(time.time()) // self.window_seconds}"

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        redis = get_redis_or_none()
        if redis is None or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        key = self._key(request)
        pipe = redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, self.window_seconds + 1)
        count = int((await pipe.execute())[0])

        limit_headers = {
            "X-RateLimit-Limit": str(self.requests_per_window),
            "X-RateLimit-Remaining": str(max(0, self.requests_per_window - count)),
        }
        if count > self.requests_per_window:
            logger.warning("rate_limited", key=key, count=count)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={**limit_headers, "Retry-After": str(self.window_seconds)},
            )

        response = await call_next(request)
        response.headers.update(limit_headers)
        return response
