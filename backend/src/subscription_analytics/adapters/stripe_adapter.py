"""Stripe billing API adapter."""
import asyncio
from typing import Any, Protocol

import stripe
import structlog

from subscription_analytics.exceptions import ConfigurationError
from subscription_analytics.metrics import stripe_requests_total
from subscription_analytics.schemas.subscription import InvoiceRecord, Page, SubscriptionRecord

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100


class BillingClient(Protocol):
    """Read-only view of the billing API used by the aggregations."""

    async def list_subscriptions(self, params: dict[str, Any]) -> Page[SubscriptionRecord]:
        ...

    async def list_invoices(self, params: dict[str, Any]) -> Page[InvoiceRecord]:
        ...

    async def retrieve_balance(self) -> dict[str, Any]:
        ...


class StripeAdapter:
    """Adapter for the Stripe API.

    Owns its own ``stripe.StripeClient`` so several adapters (or a fake in
    tests) can coexist without touching module-level ``stripe.api_key``.
    """

    def __init__(self, api_key: str | None, client: stripe.StripeClient | None = None):
        """
        Initialize Stripe adapter.

        Args:
            api_key: Stripe secret key
            client: Pre-built client (mostly for tests)

        Raises:
            ConfigurationError: If no API key is given and no client is supplied
        """
        if client is None:
            if not api_key:
                raise ConfigurationError("Stripe secret key is not configured")
            client = stripe.StripeClient(api_key)
        self._client = client

    async def list_subscriptions(self, params: dict[str, Any]) -> Page[SubscriptionRecord]:
        """
        List one page of subscriptions.

        Args:
            params: Stripe list parameters (status, created, customer, limit,
                starting_after, expand)

        Returns:
            Page of typed subscription records
        """
        result = await self._call("subscriptions", self._client.v1.subscriptions.list, params)
        return Page[SubscriptionRecord](
            data=[SubscriptionRecord.model_validate(sub) for sub in result.data],
            has_more=bool(result.has_more),
        )

    async def list_invoices(self, params: dict[str, Any]) -> Page[InvoiceRecord]:
        """
        List one page of invoices.

        Args:
            params: Stripe list parameters (customer, status, limit,
                starting_after, expand)

        Returns:
            Page of typed invoice records
        """
        result = await self._call("invoices", self._client.v1.invoices.list, params)
        return Page[InvoiceRecord](
            data=[InvoiceRecord.from_stripe(invoice) for invoice in result.data],
            has_more=bool(result.has_more),
        )

    async def retrieve_balance(self) -> dict[str, Any]:
        """
        Retrieve the account balance.

        Only used as a cheap connectivity probe.

        Returns:
            Available balance amounts keyed by currency
        """
        balance = await self._call("balance", self._client.v1.balance.retrieve, None)
        return {
            entry.currency: entry.amount
            for entry in (getattr(balance, "available", None) or [])
        }

    async def _call(self, resource: str, method: Any, params: dict[str, Any] | None) -> Any:
        if params is not None and params.get("limit", 0) > MAX_PAGE_SIZE:
            params = {**params, "limit": MAX_PAGE_SIZE}

        try:
            if params is None:
                result = await asyncio.to_thread(method)
            else:
                result = await asyncio.to_thread(method, params=params)
        except stripe.StripeError as e:
            stripe_requests_total.labels(resource=resource, outcome="error").inc()
            logger.warning(
                "stripe_request_failed",
                resource=resource,
                stripe_code=getattr(e, "code", None),
                error=str(e),
            )
            raise

        stripe_requests_total.labels(resource=resource, outcome="ok").inc()
        return result
