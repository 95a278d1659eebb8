"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from stripe import StripeError

from subscription_analytics.config import settings
from subscription_analytics.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    ReportDeliveryError,
)
from subscription_analytics.middleware.logging import LoggingMiddleware, setup_logging
from subscription_analytics.middleware.metrics import MetricsMiddleware
from subscription_analytics.schemas.error import ActionResponse, ErrorCode, REMEDIATION_HINTS

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    from subscription_analytics.api import deps

    logger.info(
        "application_starting",
        env=settings.app_env,
        stripe_configured=bool(settings.stripe_secret_key),
    )
    yield
    logger.info("application_shutting_down")
    if deps._provider is not None:
        close = getattr(deps._provider.cache_backend, "close", None)
        if close is not None:
            await close()


app = FastAPI(
    title="Subscription Analytics",
    description="Stripe subscription metrics, dashboard actions and weekly email reports",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


def _envelope(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ActionResponse.error(message, code).model_dump(),
    )


# Exception handlers turning service errors into action envelopes
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed action body; 422 with the first field error."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(loc) for loc in first.get("loc", ()) if loc != "body")

    logger.warning("validation_error", error_count=len(errors), field=field)

    message = f"{field}: {first.get('msg')}" if field else "Request validation failed"
    return _envelope(422, message, "validation_error")


@app.exception_handler(AuthenticationError)
async def authentication_exception_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    response = _envelope(status.HTTP_401_UNAUTHORIZED, exc.message, exc.code)
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(AuthorizationError)
async def authorization_exception_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    """Failed nonce or capability check; the message is returned verbatim."""
    return _envelope(status.HTTP_403_FORBIDDEN, exc.message, exc.code)


@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    """Missing Stripe key or report recipients."""
    logger.warning("configuration_error", code=exc.code, message=exc.message)
    return _envelope(status.HTTP_400_BAD_REQUEST, exc.message, exc.code)


@app.exception_handler(ReportDeliveryError)
async def delivery_exception_handler(request: Request, exc: ReportDeliveryError) -> JSONResponse:
    return _envelope(status.HTTP_502_BAD_GATEWAY, exc.message, exc.code)


@app.exception_handler(StripeError)
async def stripe_exception_handler(request: Request, exc: StripeError) -> JSONResponse:
    """
    Handle Stripe API errors that were not absorbed per metric.

    Returns 502 Bad Gateway; the Stripe message is only exposed outside production.
    """
    stripe_message = str(exc)

    logger.error(
        "stripe_error",
        stripe_code=getattr(exc, "code", None),
        stripe_message=stripe_message,
    )

    message = stripe_message if settings.app_env != "production" else REMEDIATION_HINTS[ErrorCode.STRIPE_API_ERROR]
    return _envelope(status.HTTP_502_BAD_GATEWAY, message, ErrorCode.STRIPE_API_ERROR)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs the stack trace but returns a safe message to the client.
    """
    logger.exception(
        "unhandled_exception",
        exception_type=type(exc).__name__,
        exception_message=str(exc),
    )

    message = str(exc) if settings.debug else "An unexpected error occurred"
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, message, ErrorCode.INTERNAL_ERROR)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Subscription Analytics",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


# Include routers
from subscription_analytics.api.v1 import analytics, health  # noqa: E402

app.include_router(health.router, tags=["Health"])
app.include_router(analytics.router, prefix="/v1", tags=["Analytics"])
