"""Pytest configuration and fixtures."""
from datetime import timedelta
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from subscription_analytics.auth.jwt import jwt_auth
from subscription_analytics.cache import CacheEntry, MemoryCache
from subscription_analytics.config import Settings
from subscription_analytics.services.analytics_service import AnalyticsService
from subscription_analytics.services.provider import ServiceProvider
from subscription_analytics.services.stats_service import StatsService
from utils.fakes import NOW, FakeBillingClient, FakeClock, bearer, build_fixture_client


@pytest.fixture
def billing_client() -> FakeBillingClient:
    return build_fixture_client()


@pytest.fixture
def analytics(billing_client: FakeBillingClient) -> AnalyticsService:
    return AnalyticsService(billing_client, page_delay=0, clock=lambda: NOW)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_cache(clock: FakeClock) -> MemoryCache:
    return MemoryCache(clock=clock)


@pytest.fixture
def stats_service(analytics: AnalyticsService, memory_cache: MemoryCache) -> StatsService:
    return StatsService(
        analytics,
        stats_cache=CacheEntry(memory_cache, "analytics:stats", timedelta(hours=1)),
        subscriber_cache=CacheEntry(memory_cache, "analytics:subscribers", timedelta(hours=1)),
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        stripe_secret_key="sk_test_fixture",
        stripe_page_delay_ms=0,
        report_recipients="",
        site_name="Test Site",
        dashboard_url="https://example.com/dashboard",
        smtp_host="smtp.example.com",
        smtp_username=None,
        mail_from="analytics@example.com",
    )


@pytest.fixture
def provider(
    test_settings: Settings,
    memory_cache: MemoryCache,
    billing_client: FakeBillingClient,
    analytics: AnalyticsService,
) -> ServiceProvider:
    return ServiceProvider(
        test_settings,
        cache_backend=memory_cache,
        billing_client=billing_client,
        analytics=analytics,
    )


@pytest.fixture(scope="function")
def client(provider: ServiceProvider) -> Generator[TestClient, None, None]:
    """
    FastAPI test client whose services use the fake billing client.

    Returns:
        TestClient: Synchronous test client for FastAPI
    """
    from subscription_analytics.api.deps import get_services
    from subscription_analytics.main import app

    app.dependency_overrides[get_services] = lambda: provider

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return bearer("admin-1", "Administrator")


@pytest.fixture
def viewer_headers() -> dict[str, str]:
    return bearer("viewer-1", "Viewer")


@pytest.fixture
def admin_nonce() -> str:
    return jwt_auth.create_nonce("admin-1")


@pytest.fixture
def viewer_nonce() -> str:
    return jwt_auth.create_nonce("viewer-1")
