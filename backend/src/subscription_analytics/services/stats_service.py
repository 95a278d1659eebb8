"""Cached dashboard statistics.

Ties ``AnalyticsService`` to the two cache entries the dashboard reads: the
metrics snapshot and the long-standing subscriber table.
"""
import time
from typing import Awaitable, Callable, List, Optional, TypeVar

import stripe
import structlog

from subscription_analytics.cache import CacheEntry
from subscription_analytics.metrics import aggregation_duration_seconds, aggregation_failures_total
from subscription_analytics.schemas.analytics_snapshot import MetricName, MetricsSnapshot, SubscriberRow
from subscription_analytics.schemas.subscription import SubscriptionStatus
from subscription_analytics.services.analytics_service import AnalyticsService, retention_rate
from subscription_analytics.utils.formatting import format_duration_for_display

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class StatsService:
    """Serve analytics through the cache, computing on miss or on demand."""

    def __init__(
        self,
        analytics: AnalyticsService,
        stats_cache: CacheEntry,
        subscriber_cache: CacheEntry,
    ):
        """
        Initialize stats service.

        Args:
            analytics: Aggregations over the billing API
            stats_cache: Entry holding the metrics snapshot
            subscriber_cache: Entry holding the subscriber table
        """
        self.analytics = analytics
        self.stats_cache = stats_cache
        self.subscriber_cache = subscriber_cache

    async def _measure(
        self,
        name: str,
        compute: Callable[[], Awaitable[T]],
        unavailable: List[str],
    ) -> Optional[T]:
        """Run one metric; a Stripe failure marks it unavailable instead of aborting the snapshot."""
        try:
            return await compute()
        except stripe.StripeError as e:
            aggregation_failures_total.labels(metric=name).inc()
            logger.error(
                "metric_unavailable",
                metric=name,
                stripe_code=getattr(e, "code", None),
                error=str(e),
            )
            unavailable.append(name)
            return None

    async def compute_snapshot(self) -> MetricsSnapshot:
        """
        Compute every dashboard metric.

        Returns:
            Snapshot; failed metrics are ``None`` and listed in ``unavailable``
        """
        started = time.perf_counter()
        analytics = self.analytics
        unavailable: List[str] = []

        logger.info("snapshot_computation_started")

        active = await self._measure(
            MetricName.ACTIVE_COUNT,
            lambda: analytics.count_by_status(SubscriptionStatus.ACTIVE),
            unavailable,
        )
        cancelled = await self._measure(
            MetricName.CANCELLED_COUNT,
            lambda: analytics.count_by_status(SubscriptionStatus.CANCELED),
            unavailable,
        )
        original_active = await self._measure(MetricName.ORIGINAL_ACTIVE, analytics.original_active_count, unavailable)
        avg_duration = await self._measure(MetricName.AVG_DURATION, analytics.average_duration_days, unavailable)
        new_this_week = await self._measure(MetricName.NEW_THIS_WEEK, analytics.weekly_new_count, unavailable)
        cancelled_this_week = await self._measure(
            MetricName.CANCELLED_THIS_WEEK, analytics.weekly_cancelled_count, unavailable
        )
        returning = await self._measure(MetricName.RETURNING_COUNT, analytics.returning_customers_count, unavailable)
        common_dropoff = await self._measure(MetricName.COMMON_DROPOFF, analytics.common_dropoff_period, unavailable)

        if active is None or cancelled is None:
            rate = None
            unavailable.append(MetricName.RETENTION_RATE)
        else:
            rate = retention_rate(active, cancelled)

        snapshot = MetricsSnapshot(
            active_count=active,
            cancelled_count=cancelled,
            original_active=original_active,
            retention_rate=rate,
            avg_duration_days=avg_duration,
            avg_duration_display=format_duration_for_display(avg_duration) if avg_duration is not None else None,
            new_this_week=new_this_week,
            cancelled_this_week=cancelled_this_week,
            returning_count=returning,
            common_dropoff=common_dropoff,
            last_updated=analytics.clock(),
            unavailable=unavailable,
        )

        duration = time.perf_counter() - started
        aggregation_duration_seconds.labels(kind="snapshot").observe(duration)
        logger.info(
            "snapshot_computation_completed",
            duration_seconds=round(duration, 3),
            active_count=active,
            retention_rate=rate,
            unavailable=unavailable,
        )
        return snapshot

    async def _compute_snapshot_payload(self) -> dict:
        snapshot = await self.compute_snapshot()
        return snapshot.model_dump(mode="json")

    @staticmethod
    def _is_complete_payload(payload: dict) -> bool:
        return not payload.get("unavailable")

    async def _compute_subscriber_payload(self) -> list:
        started = time.perf_counter()
        rows = await self.analytics.top_subscribers()
        aggregation_duration_seconds.labels(kind="subscribers").observe(time.perf_counter() - started)
        return [row.model_dump(mode="json") for row in rows]

    async def get_dashboard_stats(self, force_refresh: bool = False) -> MetricsSnapshot:
        """
        Current metrics snapshot.

        A snapshot with unavailable metrics is returned but not cached, so the
        next read retries the failed metrics.

        Args:
            force_refresh: Recompute even if a cached snapshot exists

        Returns:
            Cached or freshly computed snapshot
        """
        payload = await self.stats_cache.fetch_or_compute(
            self._compute_snapshot_payload,
            force=force_refresh,
            should_store=self._is_complete_payload,
        )
        return MetricsSnapshot.model_validate(payload)

    async def get_subscriber_table(self, force_refresh: bool = False) -> List[SubscriberRow]:
        """
        Long-standing subscribers ranked by value.

        Args:
            force_refresh: Recompute even if a cached table exists

        Returns:
            At most 25 rows, highest value first

        Raises:
            stripe.StripeError: If the table could not be computed
        """
        payload = await self.subscriber_cache.fetch_or_compute(self._compute_subscriber_payload, force=force_refresh)
        return [SubscriberRow.model_validate(row) for row in payload]

    async def cached_snapshot(self) -> Optional[MetricsSnapshot]:
        """Cached snapshot, without computing one."""
        payload, present = await self.stats_cache.get()
        if not present:
            return None
        return MetricsSnapshot.model_validate(payload)

    async def test_connectivity(self) -> bool:
        """
        Probe the billing API with one lightweight call.

        Returns:
            True if the API answered
        """
        try:
            await self.analytics.client.retrieve_balance()
        except stripe.StripeError as e:
            logger.warning("stripe_connectivity_failed", stripe_code=getattr(e, "code", None), error=str(e))
            return False

        logger.info("stripe_connectivity_ok")
        return True
