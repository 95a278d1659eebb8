"""Analytics report emails: on-demand test reports and the weekly report."""
import time
from datetime import datetime, timezone
from typing import Dict

import stripe
import structlog

from subscription_analytics.exceptions import ConfigurationError, ReportDeliveryError
from subscription_analytics.integrations.notification_service import NotificationService
from subscription_analytics.metrics import aggregation_duration_seconds, reports_sent_total
from subscription_analytics.schemas.error import ErrorCode, REMEDIATION_HINTS
from subscription_analytics.services.analytics_service import AnalyticsService
from subscription_analytics.services.preference_service import PreferenceService
from subscription_analytics.services.stats_service import StatsService
from subscription_analytics.utils.formatting import UNAVAILABLE, format_email_body

logger = structlog.get_logger(__name__)

TOP_CUSTOMERS_IN_REPORT = 5


class ReportService:
    """Build and send the analytics report email."""

    def __init__(
        self,
        stats: StatsService,
        analytics: AnalyticsService,
        notifier: NotificationService,
        preferences: PreferenceService,
        site_name: str,
        dashboard_url: str,
    ):
        self.stats = stats
        self.analytics = analytics
        self.notifier = notifier
        self.preferences = preferences
        self.site_name = site_name
        self.dashboard_url = dashboard_url

    async def send_test_report(self) -> Dict:
        """
        Send the report to the configured recipients right away.

        Uses the cached snapshot when there is one. Otherwise the snapshot is
        computed; metrics that fail are reported as unavailable.

        Returns:
            Send status with the recipient list

        Raises:
            ConfigurationError: If no recipients are configured
            ReportDeliveryError: If the email could not be sent
        """
        recipients = await self.preferences.get_recipients()
        if not recipients:
            logger.warning("test_report_no_recipients")
            raise ConfigurationError(REMEDIATION_HINTS[ErrorCode.NO_RECIPIENTS], ErrorCode.NO_RECIPIENTS)

        snapshot = await self.stats.cached_snapshot()
        if snapshot is None:
            logger.info("test_report_no_cached_stats")
            snapshot = await self.stats.compute_snapshot()

        body = format_email_body(snapshot, is_test=True, dashboard_url=self.dashboard_url)

        try:
            result = await self.notifier.send_email(
                recipients,
                f"Analytics Test Report - {self.site_name}",
                body,
            )
        except ReportDeliveryError:
            reports_sent_total.labels(kind="test", outcome="failed").inc()
            raise

        reports_sent_total.labels(kind="test", outcome="sent").inc()
        logger.info("test_report_sent", recipients=recipients, unavailable=snapshot.unavailable)
        return result

    async def send_weekly_report(self) -> Dict:
        """
        Recompute every metric and mail the weekly report.

        Skips silently when no recipients are configured. The cache is neither
        read nor written.

        Returns:
            Send status, or ``{"status": "skipped"}``
        """
        recipients = await self.preferences.get_recipients()
        if not recipients:
            reports_sent_total.labels(kind="weekly", outcome="skipped").inc()
            logger.info("weekly_report_skipped", reason="no_recipients")
            return {"status": "skipped"}

        snapshot = await self.stats.compute_snapshot()

        started = time.perf_counter()
        try:
            top_customers = await self.analytics.top_customers_by_value(TOP_CUSTOMERS_IN_REPORT)
            aggregation_duration_seconds.labels(kind="top_customers").observe(time.perf_counter() - started)
        except stripe.StripeError as e:
            logger.error("top_customers_unavailable", error=str(e))
            top_customers = UNAVAILABLE

        body = format_email_body(
            snapshot,
            is_test=False,
            dashboard_url=self.dashboard_url,
            generated_at=datetime.now(timezone.utc),
            top_customers=top_customers,
        )

        try:
            result = await self.notifier.send_email(
                recipients,
                f"Analytics Weekly Report - {self.site_name}",
                body,
            )
        except ReportDeliveryError:
            reports_sent_total.labels(kind="weekly", outcome="failed").inc()
            raise

        reports_sent_total.labels(kind="weekly", outcome="sent").inc()
        logger.info("weekly_report_sent", recipients=recipients, unavailable=snapshot.unavailable)
        return result
