"""Structured logging setup and request context middleware."""
import logging
import sys
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from subscription_analytics.config import settings

# Probe and scrape endpoints are logged at debug level only
QUIET_PATHS = frozenset({"/health", "/health/ready", "/metrics"})


def setup_logging() -> None:
    """Configure structlog; JSON in production, colored console otherwise."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.app_env == "production":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )
    # The Stripe SDK logs every request at INFO
    logging.getLogger("stripe").setLevel(max(log_level, logging.WARNING))


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Bind request_id, path and method to every log entry of a request.

    An incoming ``X-Request-ID`` header is reused so dashboard and server
    logs can be correlated; otherwise a new id is generated. The id is
    echoed back in the response headers.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:12]}"

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )

        logger = structlog.get_logger(__name__)
        log = logger.debug if request.url.path in QUIET_PATHS else logger.info
        started = time.perf_counter()

        log("request_started")

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception(
                "request_failed",
                exc_info=exc,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            raise

        log(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        response.headers["X-Request-ID"] = request_id
        return response
