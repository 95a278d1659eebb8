"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter, Histogram

# Stripe API metrics
stripe_requests_total = Counter(
    "stripe_requests_total",
    "Total Stripe API page requests",
    labelnames=["resource", "outcome"],  # outcome: ok, error
)

# Aggregation metrics
aggregation_failures_total = Counter(
    "aggregation_failures_total",
    "Metric computations that failed and were reported as unavailable",
    labelnames=["metric"],
)

aggregation_duration_seconds = Histogram(
    "aggregation_duration_seconds",
    "Time spent computing an analytics result",
    labelnames=["kind"],  # kind: snapshot, subscribers, top_customers
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

# Cache metrics
cache_lookups_total = Counter(
    "cache_lookups_total",
    "Cache lookups for analytics entries",
    labelnames=["entry", "result"],  # result: hit, miss, forced
)

# Report metrics
reports_sent_total = Counter(
    "reports_sent_total",
    "Analytics report emails",
    labelnames=["kind", "outcome"],  # kind: test, weekly; outcome: sent, failed, skipped
)
