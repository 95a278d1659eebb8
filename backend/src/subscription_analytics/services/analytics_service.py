"""
Analytics service for subscription metrics computed from Stripe.

Every metric walks the relevant Stripe list to exhaustion:
- Retention: active / (active + canceled) subscriptions
- Average duration: mean age of active subscriptions in whole days
- Drop-off period: most common start-to-cancel interval
- Returning customers: active customers with at least one canceled subscription
- Top subscribers: long-standing customers ranked by recent paid invoices

Pages are requested sequentially with a short pause in between to stay clear
of Stripe rate limits. Remote errors are not handled here: a failed page
aborts the metric, and the caller decides how to report it.
"""

import asyncio
from collections import Counter
from contextlib import aclosing
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Union

import structlog

from subscription_analytics.adapters.stripe_adapter import BillingClient
from subscription_analytics.schemas.analytics_snapshot import InvoiceSummary, SubscriberRow, TopCustomer
from subscription_analytics.schemas.subscription import (
    InvoiceRecord,
    InvoiceStatus,
    SubscriptionRecord,
    SubscriptionStatus,
)
from subscription_analytics.utils.formatting import format_dropoff_period, format_email_address

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
PAGE_SIZE = 100
EXPANDED_PAGE_SIZE = 25
ORIGINAL_ACTIVE_WINDOW = timedelta(days=90)
WEEK = timedelta(days=7)
RECENT_INVOICE_LIMIT = 5
MAX_SUBSCRIBER_ROWS = 25

NO_DROPOFF_DATA = "No cancellation data available"

Timestamp = Union[datetime, int]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_epoch(value: Timestamp) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    return int(value)


def _round_days(seconds: int) -> int:
    """Round a duration to whole days, halves away from zero."""
    days = Decimal(seconds) / Decimal(SECONDS_PER_DAY)
    return int(days.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _minor_to_major(amount: int) -> Decimal:
    return (Decimal(amount) / Decimal(100)).quantize(Decimal("0.01"))


def common_dropoff_from_periods(periods: Iterable[int]) -> str:
    """
    Describe the most frequent drop-off period.

    Ties go to the period seen first.

    Args:
        periods: Drop-off periods in whole days

    Returns:
        Formatted period with its customer count, or ``NO_DROPOFF_DATA``
    """
    counts = Counter(periods)
    if not counts:
        return NO_DROPOFF_DATA

    period, count = counts.most_common(1)[0]
    return format_dropoff_period(period, count)


def retention_rate(active: int, cancelled: int) -> int:
    """Percentage of subscriptions still active; 0 when there are none."""
    total = active + cancelled
    if total <= 0:
        return 0
    rate = Decimal(active) * 100 / Decimal(total)
    return int(rate.quantize(Decimal(1), rounding=ROUND_HALF_UP))


class AnalyticsService:
    """
    Service computing subscription analytics from the billing API.

    Each public coroutine computes one metric independently.
    """

    def __init__(
        self,
        client: BillingClient,
        page_delay: float = 0.05,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize analytics service.

        Args:
            client: Billing API client
            page_delay: Pause between page requests, in seconds
            clock: Returns the current (timezone-aware) time
        """
        self.client = client
        self.page_delay = page_delay
        self.clock = clock

    def _now(self) -> int:
        return _to_epoch(self.clock())

    async def _pause(self) -> None:
        if self.page_delay > 0:
            await asyncio.sleep(self.page_delay)

    async def _iter_subscriptions(
        self,
        params: Dict[str, Any],
        page_size: int = PAGE_SIZE,
    ) -> AsyncIterator[SubscriptionRecord]:
        """Yield every subscription matching ``params``, following the cursor."""
        params = {**params, "limit": page_size}

        while True:
            page = await self.client.list_subscriptions(params)
            for subscription in page.data:
                yield subscription

            if not page.has_more or not page.data:
                break

            params = {**params, "starting_after": page.data[-1].id}
            await self._pause()

    async def _iter_invoices(
        self,
        params: Dict[str, Any],
        page_size: int = PAGE_SIZE,
    ) -> AsyncIterator[InvoiceRecord]:
        """Yield every invoice matching ``params``, following the cursor."""
        params = {**params, "limit": page_size}

        while True:
            page = await self.client.list_invoices(params)
            for invoice in page.data:
                yield invoice

            if not page.has_more or not page.data:
                break

            params = {**params, "starting_after": page.data[-1].id}
            await self._pause()

    async def count_by_status(self, status: str, since: Optional[Timestamp] = None) -> int:
        """
        Count subscriptions with the given status.

        Args:
            status: Stripe subscription status
            since: Only count subscriptions created at or after this time

        Returns:
            Number of matching subscriptions
        """
        params: Dict[str, Any] = {"status": status}
        if since is not None:
            params["created"] = {"gte": _to_epoch(since)}

        count = 0
        async for _ in self._iter_subscriptions(params):
            count += 1

        logger.info("subscriptions_counted", status=status, since=params.get("created"), count=count)
        return count

    async def original_active_count(self, cutoff: Optional[Timestamp] = None) -> int:
        """
        Count active subscriptions created at or before ``cutoff``.

        Args:
            cutoff: Defaults to 90 days ago

        Returns:
            Number of long-standing active subscriptions
        """
        cutoff_ts = _to_epoch(cutoff) if cutoff is not None else self._now() - int(ORIGINAL_ACTIVE_WINDOW.total_seconds())

        count = 0
        params = {"status": SubscriptionStatus.ACTIVE, "created": {"lte": cutoff_ts}}
        async for _ in self._iter_subscriptions(params):
            count += 1

        logger.info("original_active_counted", cutoff=cutoff_ts, count=count)
        return count

    async def average_duration_days(self) -> int:
        """
        Mean age of active subscriptions in whole days.

        Each subscription contributes ``floor((now - start_date) / 1 day)``;
        the mean is truncated.

        Returns:
            Average duration, or 0 when there are no active subscriptions
        """
        now = self._now()
        total_days = 0
        count = 0

        async for subscription in self._iter_subscriptions({"status": SubscriptionStatus.ACTIVE}):
            if subscription.start_date is None:
                continue
            total_days += (now - subscription.start_date) // SECONDS_PER_DAY
            count += 1

        if count == 0:
            logger.info("average_duration_no_subscriptions")
            return 0

        average = int(total_days / count)
        logger.info("average_duration_calculated", total_days=total_days, count=count, average_days=average)
        return average

    async def dropoff_periods(self) -> List[int]:
        """
        Start-to-cancel durations of canceled subscriptions, in days.

        Subscriptions missing either timestamp and negative durations are
        skipped.
        """
        periods: List[int] = []
        skipped = 0

        async for subscription in self._iter_subscriptions({"status": SubscriptionStatus.CANCELED}):
            if not subscription.start_date or not subscription.canceled_at:
                skipped += 1
                continue

            days = _round_days(subscription.canceled_at - subscription.start_date)
            if days >= 0:
                periods.append(days)

        logger.info("dropoff_periods_collected", valid=len(periods), skipped=skipped)
        return periods

    async def common_dropoff_period(self) -> str:
        """Most common drop-off period, e.g. "2 months (14 customers)"."""
        return common_dropoff_from_periods(await self.dropoff_periods())

    async def returning_customers_count(self) -> int:
        """
        Count active customers who previously canceled a subscription.

        Each distinct customer with an active subscription costs one extra
        lookup for a canceled subscription.
        """
        checked: set[str] = set()
        returning = 0

        params = {"status": SubscriptionStatus.ACTIVE, "expand": ["data.customer"]}
        async for subscription in self._iter_subscriptions(params, EXPANDED_PAGE_SIZE):
            customer_id = subscription.customer_id
            if customer_id is None or customer_id in checked:
                continue
            checked.add(customer_id)

            previous = await self.client.list_subscriptions(
                {"customer": customer_id, "status": SubscriptionStatus.CANCELED, "limit": 1}
            )
            if previous.data:
                returning += 1

        logger.info("returning_customers_counted", customers_checked=len(checked), returning=returning)
        return returning

    async def weekly_new_count(self) -> int:
        """Active subscriptions created during the last 7 days."""
        week_ago = self._now() - int(WEEK.total_seconds())
        return await self.count_by_status(SubscriptionStatus.ACTIVE, since=week_ago)

    async def weekly_cancelled_count(self) -> int:
        """Subscriptions canceled during the last 7 days."""
        week_ago = self._now() - int(WEEK.total_seconds())
        count = 0

        async for subscription in self._iter_subscriptions({"status": SubscriptionStatus.CANCELED}):
            cancelled_at = subscription.canceled_at or subscription.ended_at
            if cancelled_at is not None and cancelled_at >= week_ago:
                count += 1

        logger.info("weekly_cancellations_counted", since=week_ago, count=count)
        return count

    def _start_of(self, subscription: SubscriptionRecord) -> int:
        return subscription.start_date or subscription.created or self._now()

    async def top_subscribers(self, max_rows: int = MAX_SUBSCRIBER_ROWS) -> List[SubscriberRow]:
        """
        Long-standing subscribers ranked by recent paid invoices.

        Scans active subscriptions created at least 90 days ago and sums each
        customer's latest paid invoices. Customers without an email or with
        nothing paid are skipped. The scan stops once ``max_rows`` customers
        qualify.

        Args:
            max_rows: Maximum number of rows

        Returns:
            Rows ordered by total value, highest first
        """
        if max_rows <= 0:
            return []

        now = self._now()
        cutoff = now - int(ORIGINAL_ACTIVE_WINDOW.total_seconds())
        params = {
            "status": SubscriptionStatus.ACTIVE,
            "created": {"lte": cutoff},
            "expand": ["data.customer"],
        }

        rows: List[SubscriberRow] = []
        seen: set[str] = set()

        async with aclosing(self._iter_subscriptions(params, EXPANDED_PAGE_SIZE)) as subscriptions:
            async for subscription in subscriptions:
                customer_id = subscription.customer_id
                email = subscription.customer_email
                if customer_id is None or not email or customer_id in seen:
                    continue
                seen.add(customer_id)

                invoices = await self.client.list_invoices(
                    {"customer": customer_id, "status": InvoiceStatus.PAID, "limit": RECENT_INVOICE_LIMIT}
                )
                total = sum(invoice.amount_paid for invoice in invoices.data)
                if total <= 0:
                    continue

                started = self._start_of(subscription)
                rows.append(
                    SubscriberRow(
                        customer_id=customer_id,
                        email=email,
                        email_display=format_email_address(email),
                        signup_date=datetime.fromtimestamp(started, tz=timezone.utc).date(),
                        duration_days=(now - started) // SECONDS_PER_DAY,
                        total_value=_minor_to_major(total),
                    )
                )
                if len(rows) >= max_rows:
                    break

        rows.sort(key=lambda row: row.total_value, reverse=True)
        logger.info("top_subscribers_collected", rows=len(rows), customers_checked=len(seen))
        return rows

    async def customer_total_value(self, customer_id: str) -> Decimal:
        """Lifetime paid value of a customer in major currency units."""
        total = 0
        async for invoice in self._iter_invoices({"customer": customer_id}):
            if invoice.is_paid:
                total += invoice.amount_paid
        return _minor_to_major(total)

    async def top_customers_by_value(self, limit: int = 5) -> List[TopCustomer]:
        """
        Active customers ranked by lifetime paid value.

        Unlike ``top_subscribers`` this covers every active customer and their
        full invoice history.

        Args:
            limit: Number of customers to keep

        Returns:
            Customers ordered by value, highest first
        """
        customers: List[TopCustomer] = []
        seen: set[str] = set()

        params = {"status": SubscriptionStatus.ACTIVE, "expand": ["data.customer"]}
        async for subscription in self._iter_subscriptions(params, EXPANDED_PAGE_SIZE):
            customer_id = subscription.customer_id
            email = subscription.customer_email
            if customer_id is None or not email or customer_id in seen:
                continue
            seen.add(customer_id)

            value = await self.customer_total_value(customer_id)
            if value > 0:
                started = self._start_of(subscription)
                customers.append(
                    TopCustomer(
                        email=email,
                        value=value,
                        start_date=datetime.fromtimestamp(started, tz=timezone.utc).date(),
                    )
                )

        customers.sort(key=lambda customer: customer.value, reverse=True)
        logger.info("top_customers_ranked", candidates=len(customers), limit=limit)
        return customers[:limit]

    async def customer_invoice_summary(self, customer_id: str) -> InvoiceSummary:
        """
        Tally a customer's invoices.

        Args:
            customer_id: Stripe customer ID

        Returns:
            Invoice counts, paid total and the latest paid invoice
        """
        summary = InvoiceSummary(customer_id=customer_id)

        async for invoice in self._iter_invoices({"customer": customer_id}):
            summary.total_invoices += 1
            if invoice.status == InvoiceStatus.PAID:
                summary.paid_invoices += 1
                summary.total_paid += invoice.amount_paid
                if invoice.created is not None and (
                    summary.latest_invoice_date is None or invoice.created > summary.latest_invoice_date
                ):
                    summary.latest_invoice_date = invoice.created
                    summary.latest_paid_amount = invoice.amount_paid
            elif invoice.status == InvoiceStatus.VOID:
                summary.void_invoices += 1

        return summary
