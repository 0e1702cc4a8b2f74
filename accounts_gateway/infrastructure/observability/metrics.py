"""Prometheus metrics for monitoring payments, schedules and cash register posting"""

from prometheus_client import Counter, Histogram

# Account metrics
accounts_created_counter = Counter(
    "accounts_created_total",
    "Accounts created",
    ["kind", "creation_type"],  # payable | receivable, single | installment_plan | replication
)

# Payment metrics
payment_counter = Counter(
    "accounts_payments_total",
    "Payment attempts by outcome",
    ["kind", "outcome"],  # recorded | <error code>
)

payment_duration_histogram = Histogram(
    "accounts_payment_duration_seconds",
    "Time to validate, post and persist a payment",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Cash register metrics
ledger_latency_histogram = Histogram(
    "cash_ledger_latency_seconds",
    "Cash register movement post time",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ledger_failure_counter = Counter(
    "cash_ledger_failures_total",
    "Failed cash register movement posts",
    ["reason"],  # timeout | http | database | no_open_register
)

ledger_compensation_counter = Counter(
    "cash_ledger_compensations_total",
    "Movements reversed because the account write failed",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment(kind: str, outcome: str) -> None:
    """Record a payment attempt for approval/rejection rate monitoring"""
    payment_counter.labels(kind=kind, outcome=outcome).inc()
