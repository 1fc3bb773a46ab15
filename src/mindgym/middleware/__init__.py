"""HTTP middleware for the mindgym API."""

import structlog
from fastapi import FastAPI

from mindgym.config import Settings
from mindgym.middleware.cors import setup_cors
from mindgym.middleware.error_handler import setup_error_handlers
from mindgym.middleware.logging import setup_logging
from mindgym.middleware.rate_limit import RateLimitMiddleware
from mindgym.middleware.request_id import RequestIdMiddleware

logger = structlog.get_logger()


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install logging, error handlers and the middleware stack.

    Outermost to innermost: CORS, request id, rate limit. A non-positive
    ``rate_limit_requests`` turns rate limiting off.
    """
    setup_logging(settings)
    setup_error_handlers(app)

    rate_limited = settings.rate_limit_requests > 0
    if rate_limited:
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_window=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)

    logger.info(
        "middleware_ready",
        rate_limit=settings.rate_limit_requests if rate_limited else "off",
        cors_origins=len(settings.cors_origins),
    )
