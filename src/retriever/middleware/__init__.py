"""HTTP middleware stack for the Item Retriever API."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from retriever.config import Settings
from retriever.middleware.error_handler import setup_error_handlers
from retriever.middleware.logging import setup_logging
from retriever.middleware.rate_limit import RateLimitMiddleware
from retriever.middleware.request_id import RequestContextMiddleware

EXPOSED_HEADERS = ["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"]


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install logging, error handlers and middleware.

    Order of add_middleware calls is innermost first: rate limiting, then the
    request context, then CORS outermost so 429 responses carry CORS headers.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=EXPOSED_HEADERS,
    )
