"""
Background worker for the weekly analytics report.

Recomputes every metric (bypassing the cache), adds the top customers by
lifetime value and emails the report to the configured recipients.

Schedule: Mondays at 09:00 UTC via ARQ cron

Usage (with ARQ):
    arq subscription_analytics.workers.weekly_report.WorkerSettings
"""
from datetime import datetime, timezone

import structlog
from arq import cron
from arq.connections import RedisSettings

from subscription_analytics.config import settings
from subscription_analytics.middleware.logging import setup_logging
from subscription_analytics.services.provider import ServiceProvider

logger = structlog.get_logger(__name__)


async def startup(ctx: dict) -> None:
    setup_logging()
    ctx["services"] = ServiceProvider(settings)
    logger.info("weekly_report_worker_started")


async def shutdown(ctx: dict) -> None:
    services = ctx.get("services")
    close = getattr(services.cache_backend, "close", None) if services is not None else None
    if close is not None:
        await close()
    logger.info("weekly_report_worker_stopped")


async def weekly_report_job(ctx: dict) -> dict:
    """
    Send the weekly analytics report.

    ARQ worker task. Does nothing when no recipients are configured. Metrics
    that fail are reported as unavailable rather than failing the job.

    Args:
        ctx: ARQ context (holds the ServiceProvider built at startup)

    Returns:
        Dict with send status
    """
    started = datetime.now(timezone.utc)
    logger.info("weekly_report_job_started")

    services = ctx.get("services") or ServiceProvider(settings)

    try:
        preferences = services.preferences()
        if not await preferences.get_recipients():
            logger.info("weekly_report_job_skipped", reason="no_recipients")
            return {"status": "skipped"}

        result = await services.reports().send_weekly_report()

        logger.info(
            "weekly_report_job_completed",
            status=result.get("status"),
            recipients=result.get("to"),
            duration_seconds=(datetime.now(timezone.utc) - started).total_seconds(),
        )
        return result

    except Exception as e:
        logger.error(
            "weekly_report_job_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise


class WorkerSettings:
    """
    ARQ worker settings for the weekly report.

    Usage:
        arq subscription_analytics.workers.weekly_report.WorkerSettings
    """

    functions = [weekly_report_job]

    cron_jobs = [
        # weekday 0 is Monday; arq cron times are UTC
        cron(weekly_report_job, weekday=0, hour=9, minute=0, run_at_startup=False, timeout=1800),
    ]

    on_startup = startup
    on_shutdown = shutdown

    # Redis connection for ARQ
    redis_settings = RedisSettings.from_dsn(str(settings.arq_redis_url))

    # Job retention
    keep_result = 86400  # Keep results for 24 hours

    # A full report can page through every subscription and invoice
    max_jobs = 1
    job_timeout = 1800
