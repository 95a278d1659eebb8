"""Construction of the analytics services from settings.

Request handlers and the weekly worker obtain their services here. Every
collaborator can be passed in explicitly, which is how tests substitute a fake
billing client, an in-memory cache or a stub mailer.
"""
from datetime import timedelta
from typing import Optional

from subscription_analytics.adapters.stripe_adapter import BillingClient, StripeAdapter
from subscription_analytics.cache import CacheBackend, CacheEntry, RedisCache, cache_key
from subscription_analytics.config import Settings
from subscription_analytics.integrations.notification_service import NotificationService
from subscription_analytics.services.analytics_service import AnalyticsService
from subscription_analytics.services.preference_service import PreferenceService
from subscription_analytics.services.report_service import ReportService
from subscription_analytics.services.stats_service import StatsService

STATS_CACHE_KEY = cache_key("analytics", "stats")
SUBSCRIBERS_CACHE_KEY = cache_key("analytics", "subscribers")


class ServiceProvider:
    """Builds services on demand from settings and injected collaborators."""

    def __init__(
        self,
        settings: Settings,
        cache_backend: Optional[CacheBackend] = None,
        billing_client: Optional[BillingClient] = None,
        notifier: Optional[NotificationService] = None,
        analytics: Optional[AnalyticsService] = None,
    ):
        self.settings = settings
        self.cache_backend = cache_backend or RedisCache(str(settings.redis_url))
        self._billing_client = billing_client
        self._notifier = notifier
        self._analytics = analytics

    def billing_client(self) -> BillingClient:
        """
        Billing API client.

        Raises:
            ConfigurationError: If no Stripe key is configured
        """
        if self._billing_client is None:
            self._billing_client = StripeAdapter(self.settings.stripe_secret_key)
        return self._billing_client

    def analytics(self) -> AnalyticsService:
        if self._analytics is None:
            self._analytics = AnalyticsService(
                self.billing_client(),
                page_delay=self.settings.stripe_page_delay,
            )
        return self._analytics

    def notifier(self) -> NotificationService:
        if self._notifier is None:
            self._notifier = NotificationService(
                host=self.settings.smtp_host,
                port=self.settings.smtp_port,
                username=self.settings.smtp_username,
                password=self.settings.smtp_password,
                use_tls=self.settings.smtp_use_tls,
                from_email=self.settings.mail_from,
                from_name=f"{self.settings.site_name} Analytics",
            )
        return self._notifier

    def stats(self) -> StatsService:
        return StatsService(
            self.analytics(),
            stats_cache=CacheEntry(
                self.cache_backend,
                STATS_CACHE_KEY,
                timedelta(seconds=self.settings.stats_cache_ttl_seconds),
            ),
            subscriber_cache=CacheEntry(
                self.cache_backend,
                SUBSCRIBERS_CACHE_KEY,
                timedelta(seconds=self.settings.subscriber_cache_ttl_seconds),
            ),
        )

    def preferences(self) -> PreferenceService:
        return PreferenceService(self.cache_backend, default_recipients=self.settings.report_recipients)

    def reports(self) -> ReportService:
        return ReportService(
            stats=self.stats(),
            analytics=self.analytics(),
            notifier=self.notifier(),
            preferences=self.preferences(),
            site_name=self.settings.site_name,
            dashboard_url=self.settings.dashboard_url,
        )
