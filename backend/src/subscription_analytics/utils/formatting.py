"""Human-readable rendering of analytics values and the report email."""
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

from subscription_analytics.schemas.analytics_snapshot import MetricsSnapshot, TopCustomer

DAYS_PER_MONTH = 30
DAYS_PER_YEAR = 365

# Rendered in place of any metric that is missing or failed to compute
UNAVAILABLE = "unavailable"

# Legacy report keys mapped onto snapshot fields
_KEY_ALIASES = {
    "total_active": "active_count",
    "returning_subscribers": "returning_count",
    "avg_duration": "avg_duration_days",
    "total_cancelled": "cancelled_count",
}

_REPORT_FIELDS = (
    "active_count",
    "original_active",
    "returning_count",
    "retention_rate",
    "new_this_week",
    "cancelled_this_week",
    "avg_duration_days",
    "common_dropoff",
)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" + ("" if count == 1 else "s")


def format_duration(days: int) -> str:
    """
    Render a day count as days, months or years.

    Months are 30 days and years 365 days. Units are always plural, so a
    report reads "1 months" the same way it reads "3 months".

    Args:
        days: Whole number of days

    Returns:
        e.g. "12 days", "2 months, 5 days", "1 years, 1 months"
    """
    days = int(days)
    if days < DAYS_PER_MONTH:
        return f"{days} days"
    if days < DAYS_PER_YEAR:
        months, remaining_days = divmod(days, DAYS_PER_MONTH)
        if remaining_days > 0:
            return f"{months} months, {remaining_days} days"
        return f"{months} months"

    years = days // DAYS_PER_YEAR
    months = (days % DAYS_PER_YEAR) // DAYS_PER_MONTH
    if months > 0:
        return f"{years} years, {months} months"
    return f"{years} years"


def format_duration_for_display(days: int) -> str:
    """
    Render a day count for the dashboard card.

    Past twelve 30-day months the value is shown in years and months with
    proper singular forms ("1 year, 1 month").
    """
    days = int(days)
    months, remaining_days = divmod(days, DAYS_PER_MONTH)

    if days < DAYS_PER_MONTH:
        return f"{days} days"
    if months < 12:
        if remaining_days > 0:
            return f"{months} months, {remaining_days} days"
        return f"{months} months"

    years, remaining_months = divmod(months, 12)
    if remaining_months > 0:
        return f"{_plural(years, 'year')}, {_plural(remaining_months, 'month')}"
    return _plural(years, "year")


def format_dropoff_period(days: int, count: int) -> str:
    """Render the most common drop-off period with its customer count."""
    return f"{format_duration(days)} ({count} customers)"


def format_email_address(email: Optional[str]) -> str:
    """
    Shorten long addresses for table display.

    Addresses over 30 characters whose local part exceeds 20 characters keep
    the first 17 characters of the local part followed by "...".
    """
    if not email:
        return "N/A"
    if len(email) > 30:
        parts = email.split("@")
        if len(parts) == 2:
            name, domain = parts
            if len(name) > 20:
                return f"{name[:17]}...@{domain}"
    return email


def format_currency(amount: Union[Decimal, float, int]) -> str:
    return f"${Decimal(str(amount)).quantize(Decimal('0.01')):,}"


def format_top_customers(customers: Iterable[Union[TopCustomer, Mapping[str, Any]]]) -> str:
    """Numbered plaintext list of customers and their lifetime value."""
    lines = []
    for index, customer in enumerate(customers, start=1):
        if isinstance(customer, TopCustomer):
            customer = customer.model_dump()
        email = customer.get("email") or "N/A"
        start_date = customer.get("start_date") or "unknown"
        value = customer.get("value") or 0
        lines.append(f"{index}. {email} (Since {start_date})\n   Total Value: {format_currency(value)}")

    if not lines:
        return "No customer data available\n"
    return "\n".join(lines) + "\n"


def _format_generated_at(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    meridiem = "am" if moment.hour < 12 else "pm"
    return f"{moment:%B} {moment.day}, {moment.year} {hour}:{moment:%M} {meridiem}"


def _normalize_stats(stats: Union[MetricsSnapshot, Mapping[str, Any], None]) -> dict[str, Any]:
    if stats is None:
        return {}
    if isinstance(stats, MetricsSnapshot):
        return stats.model_dump()

    normalized: dict[str, Any] = {}
    for key, value in stats.items():
        normalized[_KEY_ALIASES.get(key, key)] = value
    return normalized


def format_email_body(
    stats: Union[MetricsSnapshot, Mapping[str, Any], None],
    is_test: bool = False,
    dashboard_url: str = "",
    generated_at: Optional[datetime] = None,
    top_customers: Union[Iterable[Union[TopCustomer, Mapping[str, Any]]], str, None] = None,
) -> str:
    """
    Render the plaintext analytics report.

    Any metric that is missing from ``stats`` or is ``None`` is printed as
    "unavailable". The report therefore always renders, and a failed
    computation shows up as such instead of as a number.

    Args:
        stats: Snapshot, or a mapping using snapshot (or legacy report) keys
        is_test: Render the test-report heading
        dashboard_url: Link back to the dashboard
        generated_at: Timestamp printed in the header (defaults to now)
        top_customers: Optional customers to list in a TOP CUSTOMERS section;
            a string is printed as-is (e.g. UNAVAILABLE)

    Returns:
        Email body
    """
    values = _normalize_stats(stats)
    fields = {}
    for name in _REPORT_FIELDS:
        value = values.get(name)
        fields[name] = UNAVAILABLE if value is None else value

    retention = fields["retention_rate"]
    retention_text = retention if retention == UNAVAILABLE else f"{int(retention)}%"
    duration = fields["avg_duration_days"]
    duration_text = duration if duration == UNAVAILABLE else format_duration(duration)
    title = "ANALYTICS TEST REPORT" if is_test else "ANALYTICS WEEKLY REPORT"
    generated = _format_generated_at(generated_at or datetime.now(timezone.utc))

    sections = [
        f"**{title}**\n"
        f"Generated: {generated}\n"
        "----------------------------------------\n",
        "**SUBSCRIPTION OVERVIEW**\n"
        f"Active Subscribers: {fields['active_count']}\n"
        f"Original Active Subscribers: {fields['original_active']}\n"
        f"Returning Subscribers: {fields['returning_count']}\n"
        f"Current Retention Rate: {retention_text}\n",
        "**WEEKLY CHANGES**\n"
        f"New Subscriptions: {fields['new_this_week']}\n"
        f"Cancellations: {fields['cancelled_this_week']}\n",
        "**SUBSCRIBER ACTIVITY**\n"
        f"Average Subscription Length: {duration_text}\n"
        f"Most Common Drop-off Period: {fields['common_dropoff']}\n",
    ]

    if isinstance(top_customers, str):
        sections.append(f"**TOP CUSTOMERS**\n{top_customers}\n")
    elif top_customers is not None:
        sections.append("**TOP CUSTOMERS**\n" + format_top_customers(top_customers))

    unavailable = [name for name in _REPORT_FIELDS if fields[name] == UNAVAILABLE]
    if unavailable:
        sections.append(
            "NOTE: some metrics could not be computed and are marked "
            f"'{UNAVAILABLE}': {', '.join(unavailable)}\n"
        )

    sections.append(
        "----------------------------------------\n"
        f"View detailed analytics: {dashboard_url}\n\n"
        "To modify your email preferences, visit the analytics settings on the dashboard."
    )
    return "\n".join(sections)
