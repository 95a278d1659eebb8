"""Pydantic schemas for computed analytics."""
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_serializer


class MetricName:
    """Names of the metrics that make up a snapshot."""

    ACTIVE_COUNT = "active_count"
    CANCELLED_COUNT = "cancelled_count"
    ORIGINAL_ACTIVE = "original_active"
    RETENTION_RATE = "retention_rate"
    AVG_DURATION = "avg_duration_days"
    NEW_THIS_WEEK = "new_this_week"
    CANCELLED_THIS_WEEK = "cancelled_this_week"
    RETURNING_COUNT = "returning_count"
    COMMON_DROPOFF = "common_dropoff"


class MetricsSnapshot(BaseModel):
    """
    Dashboard metrics computed in one pass.

    A metric whose computation failed is ``None`` and its name is listed in
    ``unavailable``; it is never reported as a real zero.
    """

    active_count: Optional[int] = Field(default=None, description="Currently active subscriptions")
    cancelled_count: Optional[int] = Field(default=None, description="All canceled subscriptions")
    original_active: Optional[int] = Field(default=None, description="Active subscriptions created 90+ days ago")
    retention_rate: Optional[int] = Field(default=None, ge=0, le=100, description="Retention rate (%)")
    avg_duration_days: Optional[int] = Field(default=None, description="Mean age of active subscriptions in days")
    avg_duration_display: Optional[str] = Field(default=None, description="Human-readable average duration")
    new_this_week: Optional[int] = Field(default=None, description="Active subscriptions created in the last 7 days")
    cancelled_this_week: Optional[int] = Field(default=None, description="Subscriptions canceled in the last 7 days")
    returning_count: Optional[int] = Field(default=None, description="Active customers with a prior cancellation")
    common_dropoff: Optional[str] = Field(default=None, description="Most common drop-off period")
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Computation timestamp",
    )
    unavailable: list[str] = Field(default_factory=list, description="Metrics that could not be computed")

    @property
    def is_complete(self) -> bool:
        return not self.unavailable


class SubscriberRow(BaseModel):
    """Row of the long-standing subscriber table."""

    customer_id: str
    email: str
    email_display: Optional[str] = Field(default=None, description="Email shortened for the table")
    signup_date: date
    duration_days: int
    total_value: Decimal = Field(..., gt=0, decimal_places=2, description="Sum of recent paid invoices")

    @field_serializer("total_value")
    def serialize_total_value(self, value: Decimal) -> float:
        return float(value)


class TopCustomer(BaseModel):
    """Customer ranked by lifetime paid value."""

    email: str
    value: Decimal
    start_date: Optional[date] = None

    @field_serializer("value")
    def serialize_value(self, value: Decimal) -> float:
        return float(value)


class InvoiceSummary(BaseModel):
    """Per-customer invoice tallies."""

    customer_id: str
    total_invoices: int = 0
    paid_invoices: int = 0
    void_invoices: int = 0
    total_paid: int = Field(default=0, description="Paid total in minor currency units")
    latest_invoice_date: Optional[int] = None
    latest_paid_amount: int = 0
