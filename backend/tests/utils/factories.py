"""Test data factories using Faker for generating Stripe-shaped records."""
from datetime import datetime, timezone
from typing import Any

from faker import Faker

fake = Faker()

SECONDS_PER_DAY = 86400


def epoch(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


class CustomerFactory:
    """Factory for creating Stripe customer objects."""

    @staticmethod
    def create(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Create customer test data.

        Args:
            overrides: Optional field overrides

        Returns:
            dict: Customer object
        """
        data = {
            "id": f"cus_{fake.unique.bothify('??????##########')}",
            "object": "customer",
            "email": fake.unique.email(),
            "name": fake.name(),
        }
        if overrides:
            data.update(overrides)
        return data


class SubscriptionFactory:
    """Factory for creating Stripe subscription objects."""

    @staticmethod
    def create(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Create subscription test data.

        ``customer`` is a bare customer id, as Stripe returns it unexpanded.

        Args:
            overrides: Optional field overrides

        Returns:
            dict: Subscription object
        """
        started = epoch(fake.date_time_between(start_date="-2y", end_date="-1d", tzinfo=timezone.utc))
        data = {
            "id": f"sub_{fake.unique.bothify('??????##########')}",
            "object": "subscription",
            "status": "active",
            "created": started,
            "start_date": started,
            "canceled_at": None,
            "ended_at": None,
            "customer": f"cus_{fake.unique.bothify('??????##########')}",
        }
        if overrides:
            data.update(overrides)
        return data

    @staticmethod
    def active(customer_id: str, now: int, age_days: float) -> dict[str, Any]:
        started = int(now - age_days * SECONDS_PER_DAY)
        return SubscriptionFactory.create(
            {"customer": customer_id, "created": started, "start_date": started}
        )

    @staticmethod
    def canceled(customer_id: str, now: int, canceled_days_ago: float, lasted_days: float) -> dict[str, Any]:
        canceled_at = int(now - canceled_days_ago * SECONDS_PER_DAY)
        started = int(canceled_at - lasted_days * SECONDS_PER_DAY)
        return SubscriptionFactory.create(
            {
                "status": "canceled",
                "customer": customer_id,
                "created": started,
                "start_date": started,
                "canceled_at": canceled_at,
                "ended_at": canceled_at,
            }
        )


class InvoiceFactory:
    """Factory for creating Stripe invoice objects."""

    @staticmethod
    def create(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Create invoice test data.

        Args:
            overrides: Optional field overrides

        Returns:
            dict: Invoice object
        """
        status = fake.random_element(["paid", "open", "void"])
        amount = fake.random_int(min=500, max=50000)
        data = {
            "id": f"in_{fake.unique.bothify('??????##########')}",
            "object": "invoice",
            "status": status,
            "customer": f"cus_{fake.unique.bothify('??????##########')}",
            "amount_paid": amount if status == "paid" else 0,
            "created": epoch(fake.date_time_between(start_date="-1y", end_date="now", tzinfo=timezone.utc)),
        }
        if overrides:
            data.update(overrides)
        return data

    @staticmethod
    def paid(customer_id: str, amount: int, created: int | None = None) -> dict[str, Any]:
        overrides: dict[str, Any] = {"customer": customer_id, "status": "paid", "amount_paid": amount}
        if created is not None:
            overrides["created"] = created
        return InvoiceFactory.create(overrides)
