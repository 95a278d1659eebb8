"""Integration tests for report emails and the weekly worker."""
import smtplib
from unittest.mock import MagicMock, patch

import pytest
from prometheus_client import REGISTRY

from subscription_analytics.exceptions import ConfigurationError, ReportDeliveryError
from subscription_analytics.integrations.notification_service import NotificationService
from subscription_analytics.schemas.analytics_snapshot import MetricsSnapshot
from subscription_analytics.schemas.error import ErrorCode
from subscription_analytics.services.provider import ServiceProvider
from subscription_analytics.workers.weekly_report import WorkerSettings, weekly_report_job
from utils.fakes import FakeBillingClient

SMTP_PATH = "subscription_analytics.integrations.notification_service.smtplib.SMTP"


def _sent_message(mock_smtp: MagicMock):
    server = mock_smtp.return_value.__enter__.return_value
    assert server.send_message.call_count == 1
    return server.send_message.call_args[0][0]


@pytest.mark.asyncio
async def test_notification_service_sends_plaintext() -> None:
    service = NotificationService(
        host="smtp.example.com",
        port=2525,
        username="mailer",
        password="secret",
        from_email="analytics@example.com",
        from_name="Test Site Analytics",
    )

    with patch(SMTP_PATH) as mock_smtp:
        result = await service.send_email(["a@example.com", "b@example.com"], "Hello", "Body text")

    mock_smtp.assert_called_once_with("smtp.example.com", 2525, timeout=30.0)
    server = mock_smtp.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "secret")

    message = _sent_message(mock_smtp)
    assert message["To"] == "a@example.com, b@example.com"
    assert message["From"] == "Test Site Analytics <analytics@example.com>"
    assert message["Subject"] == "Hello"
    assert message.get_content().strip() == "Body text"
    assert result == {"status": "sent", "to": ["a@example.com", "b@example.com"], "subject": "Hello"}


@pytest.mark.asyncio
async def test_notification_service_wraps_smtp_errors() -> None:
    service = NotificationService(host="smtp.example.com", use_tls=False)

    with patch(SMTP_PATH) as mock_smtp:
        server = mock_smtp.return_value.__enter__.return_value
        server.send_message.side_effect = smtplib.SMTPRecipientsRefused({})

        with pytest.raises(ReportDeliveryError):
            await service.send_email(["a@example.com"], "Hello", "Body")

    server.starttls.assert_not_called()
    server.login.assert_not_called()


@pytest.mark.asyncio
async def test_test_report_requires_recipients(provider: ServiceProvider) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        await provider.reports().send_test_report()

    assert exc_info.value.code == ErrorCode.NO_RECIPIENTS
    assert exc_info.value.message == "No recipients configured. Please save your email settings first."


@pytest.mark.asyncio
async def test_test_report_uses_cached_snapshot(provider: ServiceProvider, billing_client: FakeBillingClient) -> None:
    """Test that a cached snapshot is mailed without touching the billing API."""
    await provider.preferences().set_recipients("ops@example.com")
    await provider.stats().stats_cache.set(MetricsSnapshot(active_count=42).model_dump(mode="json"))

    with patch(SMTP_PATH) as mock_smtp:
        result = await provider.reports().send_test_report()

    assert billing_client.call_count() == 0
    message = _sent_message(mock_smtp)
    assert message["Subject"] == "Analytics Test Report - Test Site"
    body = message.get_content()
    assert "**ANALYTICS TEST REPORT**" in body
    assert "Active Subscribers: 42\n" in body
    assert "View detailed analytics: https://example.com/dashboard" in body
    assert result["to"] == ["ops@example.com"]


@pytest.mark.asyncio
async def test_test_report_computes_when_cache_empty(provider: ServiceProvider) -> None:
    await provider.preferences().set_recipients("ops@example.com")

    with patch(SMTP_PATH) as mock_smtp:
        await provider.reports().send_test_report()

    body = _sent_message(mock_smtp).get_content()
    assert "Active Subscribers: 10\n" in body
    assert "Current Retention Rate: 67%\n" in body


@pytest.mark.asyncio
async def test_test_report_never_substitutes_numbers(provider: ServiceProvider, billing_client: FakeBillingClient) -> None:
    """Test that a failed computation is mailed as unavailable."""
    await provider.preferences().set_recipients("ops@example.com")
    billing_client.fail_when = lambda resource, params: True

    with patch(SMTP_PATH) as mock_smtp:
        await provider.reports().send_test_report()

    body = _sent_message(mock_smtp).get_content()
    assert "Active Subscribers: unavailable\n" in body
    assert "Current Retention Rate: unavailable\n" in body
    assert "NOTE: some metrics could not be computed" in body


@pytest.mark.asyncio
async def test_weekly_report_recomputes_and_lists_top_customers(
    provider: ServiceProvider,
    billing_client: FakeBillingClient,
) -> None:
    await provider.preferences().set_recipients("ops@example.com, cfo@example.com")
    await provider.stats().stats_cache.set(MetricsSnapshot(active_count=42).model_dump(mode="json"))
    top_email = billing_client.customers["cus_active_4"]["email"]

    with patch(SMTP_PATH) as mock_smtp:
        result = await provider.reports().send_weekly_report()

    message = _sent_message(mock_smtp)
    body = message.get_content()
    assert message["Subject"] == "Analytics Weekly Report - Test Site"
    assert message["To"] == "ops@example.com, cfo@example.com"
    # The cache is bypassed
    assert "Active Subscribers: 10\n" in body
    assert "**TOP CUSTOMERS**\n1. " + top_email in body
    assert "Total Value: $200.00" in body
    assert result["status"] == "sent"


@pytest.mark.asyncio
async def test_weekly_report_times_top_customers(provider: ServiceProvider) -> None:
    await provider.preferences().set_recipients("ops@example.com")
    before = REGISTRY.get_sample_value("aggregation_duration_seconds_count", {"kind": "top_customers"}) or 0

    with patch(SMTP_PATH):
        await provider.reports().send_weekly_report()

    assert REGISTRY.get_sample_value("aggregation_duration_seconds_count", {"kind": "top_customers"}) == before + 1


@pytest.mark.asyncio
async def test_weekly_report_skips_without_recipients(provider: ServiceProvider, billing_client: FakeBillingClient) -> None:
    with patch(SMTP_PATH) as mock_smtp:
        result = await provider.reports().send_weekly_report()

    assert result == {"status": "skipped"}
    mock_smtp.assert_not_called()
    assert billing_client.call_count() == 0


@pytest.mark.asyncio
async def test_weekly_job_skips_without_recipients(provider: ServiceProvider) -> None:
    with patch(SMTP_PATH) as mock_smtp:
        result = await weekly_report_job({"services": provider})

    assert result == {"status": "skipped"}
    mock_smtp.assert_not_called()


@pytest.mark.asyncio
async def test_weekly_job_sends(provider: ServiceProvider) -> None:
    await provider.preferences().set_recipients("ops@example.com")

    with patch(SMTP_PATH) as mock_smtp:
        result = await weekly_report_job({"services": provider})

    assert result["status"] == "sent"
    assert "**ANALYTICS WEEKLY REPORT**" in _sent_message(mock_smtp).get_content()


@pytest.mark.asyncio
async def test_weekly_job_propagates_delivery_failure(provider: ServiceProvider) -> None:
    await provider.preferences().set_recipients("ops@example.com")

    with patch(SMTP_PATH) as mock_smtp:
        mock_smtp.side_effect = ConnectionRefusedError("relay down")

        with pytest.raises(ReportDeliveryError):
            await weekly_report_job({"services": provider})


def test_weekly_job_scheduled_monday_morning() -> None:
    """Test that the cron entry fires Mondays at 09:00."""
    [job] = WorkerSettings.cron_jobs

    assert job.coroutine is weekly_report_job
    assert job.weekday == 0
    assert job.hour == 9
    assert job.minute == 0
