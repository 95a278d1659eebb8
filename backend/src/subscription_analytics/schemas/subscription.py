"""Typed views over Stripe subscription and invoice objects.

Stripe responses are duck-typed ``StripeObject`` instances; these models pin
down which fields the aggregations rely on and which ones may be missing.
Timestamps stay as Unix epoch seconds, the way Stripe reports them.
"""
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


T = TypeVar("T")


def _field(obj: Any, name: str) -> Any:
    """Read a field from a mapping or an attribute-style object."""
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class SubscriptionStatus:
    """Stripe subscription status values used by the aggregations."""

    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"


class InvoiceStatus:
    """Stripe invoice status values."""

    PAID = "paid"
    VOID = "void"
    OPEN = "open"
    DRAFT = "draft"
    UNCOLLECTIBLE = "uncollectible"


class CustomerRef(BaseModel):
    """Customer reference; ``email`` is only known when the customer was expanded."""

    id: str
    email: str | None = None


class SubscriptionRecord(BaseModel):
    """Read-only subscription record as returned by ``subscriptions.list``."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    status: str
    created: int | None = None
    start_date: int | None = None
    canceled_at: int | None = None
    ended_at: int | None = None
    customer: CustomerRef | None = None

    @field_validator("customer", mode="before")
    @classmethod
    def normalize_customer(cls, value: Any) -> Any:
        """Accept a bare customer id or an expanded customer object."""
        if value is None or isinstance(value, CustomerRef):
            return value
        if isinstance(value, str):
            return CustomerRef(id=value)
        customer_id = _field(value, "id")
        if customer_id is None:
            return None
        return CustomerRef(id=customer_id, email=_field(value, "email"))

    @property
    def customer_id(self) -> str | None:
        return self.customer.id if self.customer else None

    @property
    def customer_email(self) -> str | None:
        return self.customer.email if self.customer else None


class InvoiceRecord(BaseModel):
    """Read-only invoice record as returned by ``invoices.list``."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    status: str | None = None
    customer: str | None = None
    amount_paid: int = Field(default=0, description="Amount paid in minor currency units")
    created: int | None = None
    payment_intent_status: str | None = None

    @field_validator("customer", mode="before")
    @classmethod
    def normalize_customer(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return _field(value, "id")

    @classmethod
    def from_stripe(cls, invoice: Any) -> "InvoiceRecord":
        """Build a record, lifting the status of an expanded payment intent."""
        record = cls.model_validate(invoice)
        payment_intent = _field(invoice, "payment_intent")
        if payment_intent is not None and not isinstance(payment_intent, str):
            record.payment_intent_status = _field(payment_intent, "status")
        return record

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID or self.payment_intent_status == "succeeded"


class Page(BaseModel, Generic[T]):
    """One page of a cursor-paginated Stripe list."""

    data: list[T] = Field(default_factory=list)
    has_more: bool = False
