"""Pydantic schemas for Stripe records, analytics results and API envelopes."""

from subscription_analytics.schemas.actions import (
    ActionRequest,
    CardOrderRequest,
    NonceResponse,
    RecipientsUpdate,
)
from subscription_analytics.schemas.analytics_snapshot import (
    InvoiceSummary,
    MetricName,
    MetricsSnapshot,
    SubscriberRow,
    TopCustomer,
)
from subscription_analytics.schemas.error import (
    ActionResponse,
    ErrorCode,
    REMEDIATION_HINTS,
)
from subscription_analytics.schemas.subscription import (
    CustomerRef,
    InvoiceRecord,
    InvoiceStatus,
    Page,
    SubscriptionRecord,
    SubscriptionStatus,
)

__all__ = [
    # Actions
    "ActionRequest",
    "CardOrderRequest",
    "NonceResponse",
    "RecipientsUpdate",
    # Analytics
    "InvoiceSummary",
    "MetricName",
    "MetricsSnapshot",
    "SubscriberRow",
    "TopCustomer",
    # Envelopes
    "ActionResponse",
    "ErrorCode",
    "REMEDIATION_HINTS",
    # Stripe records
    "CustomerRef",
    "InvoiceRecord",
    "InvoiceStatus",
    "Page",
    "SubscriptionRecord",
    "SubscriptionStatus",
]
