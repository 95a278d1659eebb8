"""Integration tests for cached dashboard statistics."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from subscription_analytics.schemas.analytics_snapshot import MetricName
from subscription_analytics.services.stats_service import StatsService
from utils.fakes import NOW, FakeBillingClient, FakeClock


@pytest.mark.asyncio
async def test_compute_snapshot(stats_service: StatsService) -> None:
    """Test the full snapshot over the ten active and five canceled subscriptions."""
    snapshot = await stats_service.compute_snapshot()

    assert snapshot.active_count == 10
    assert snapshot.cancelled_count == 5
    assert snapshot.original_active == 5
    assert snapshot.retention_rate == 67
    assert snapshot.avg_duration_days == 103
    assert snapshot.avg_duration_display == "3 months, 13 days"
    assert snapshot.new_this_week == 2
    assert snapshot.cancelled_this_week == 2
    assert snapshot.returning_count == 2
    assert snapshot.common_dropoff == "1 months (3 customers)"
    assert snapshot.last_updated == NOW
    assert snapshot.unavailable == []
    assert snapshot.is_complete


@pytest.mark.asyncio
async def test_snapshot_degrades_per_metric(stats_service: StatsService, billing_client: FakeBillingClient) -> None:
    """Test that failing canceled-subscription calls only blank the metrics that need them."""
    billing_client.fail_when = lambda resource, params: params.get("status") == "canceled"

    snapshot = await stats_service.compute_snapshot()

    assert snapshot.active_count == 10
    assert snapshot.original_active == 5
    assert snapshot.avg_duration_days == 103
    assert snapshot.new_this_week == 2

    assert snapshot.cancelled_count is None
    assert snapshot.retention_rate is None
    assert snapshot.cancelled_this_week is None
    assert snapshot.returning_count is None
    assert snapshot.common_dropoff is None
    assert set(snapshot.unavailable) == {
        MetricName.CANCELLED_COUNT,
        MetricName.RETENTION_RATE,
        MetricName.CANCELLED_THIS_WEEK,
        MetricName.RETURNING_COUNT,
        MetricName.COMMON_DROPOFF,
    }
    assert not snapshot.is_complete


@pytest.mark.asyncio
async def test_snapshot_all_unavailable(stats_service: StatsService, billing_client: FakeBillingClient) -> None:
    billing_client.fail_when = lambda resource, params: True

    snapshot = await stats_service.compute_snapshot()

    assert snapshot.active_count is None
    assert snapshot.avg_duration_display is None
    assert len(snapshot.unavailable) == 9


@pytest.mark.asyncio
async def test_dashboard_stats_served_from_cache(stats_service: StatsService, billing_client: FakeBillingClient) -> None:
    """Test that a second read within the lifetime makes no billing calls."""
    first = await stats_service.get_dashboard_stats()
    calls = billing_client.call_count()

    second = await stats_service.get_dashboard_stats()

    assert billing_client.call_count() == calls
    assert second == first


@pytest.mark.asyncio
async def test_dashboard_stats_force_refresh(stats_service: StatsService, billing_client: FakeBillingClient) -> None:
    await stats_service.get_dashboard_stats()
    calls = billing_client.call_count()

    await stats_service.get_dashboard_stats(force_refresh=True)

    assert billing_client.call_count() == 2 * calls


@pytest.mark.asyncio
async def test_cached_snapshot(stats_service: StatsService) -> None:
    assert await stats_service.cached_snapshot() is None

    await stats_service.get_dashboard_stats()
    cached = await stats_service.cached_snapshot()

    assert cached is not None
    assert cached.active_count == 10
    assert cached.last_updated == datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_subscriber_table_cached(stats_service: StatsService, billing_client: FakeBillingClient) -> None:
    rows = await stats_service.get_subscriber_table()
    calls = billing_client.call_count()

    again = await stats_service.get_subscriber_table()

    assert billing_client.call_count() == calls
    assert [row.customer_id for row in again] == [row.customer_id for row in rows]
    assert again[0].total_value == Decimal("200")


@pytest.mark.asyncio
async def test_test_connectivity(stats_service: StatsService, billing_client: FakeBillingClient) -> None:
    assert await stats_service.test_connectivity() is True
    assert billing_client.call_count("balance") == 1

    billing_client.fail_when = lambda resource, params: resource == "balance"
    assert await stats_service.test_connectivity() is False


@pytest.mark.asyncio
async def test_degraded_snapshot_not_cached(
    stats_service: StatsService,
    billing_client: FakeBillingClient,
    clock: FakeClock,
) -> None:
    """Test that a snapshot computed during an outage is retried on the next read."""
    billing_client.fail_when = lambda resource, params: True

    degraded = await stats_service.get_dashboard_stats()
    assert degraded.active_count is None
    assert await stats_service.cached_snapshot() is None

    billing_client.fail_when = None
    clock.advance(30 * 60)

    recovered = await stats_service.get_dashboard_stats()
    assert recovered.active_count == 10
    assert recovered.unavailable == []
    assert (await stats_service.cached_snapshot()).active_count == 10


@pytest.mark.asyncio
async def test_forced_degraded_refresh_keeps_last_complete_snapshot(
    stats_service: StatsService,
    billing_client: FakeBillingClient,
) -> None:
    await stats_service.get_dashboard_stats()
    billing_client.fail_when = lambda resource, params: True

    degraded = await stats_service.get_dashboard_stats(force_refresh=True)

    assert degraded.active_count is None
    assert (await stats_service.cached_snapshot()).active_count == 10
