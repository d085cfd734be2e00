"""Prometheus metrics for ledger volume, rule rejections, invoices, codes, cards and ad settlement"""

from prometheus_client import Counter, Histogram

# Ledger metrics
ledger_entries_counter = Counter(
    "ledger_entries_total",
    "Ledger entries written",
    ["kind"],  # transfer | business_payment | ... | ads_fund
)

ledger_amount_counter = Counter(
    "ledger_amount_micros_total",
    "Value moved through the ledger in micro-units",
    ["kind"],
)

rejection_counter = Counter(
    "business_rule_rejections_total",
    "Operations rejected by a business rule",
    ["code"],
)

# Lifecycle metrics
invoice_settlement_counter = Counter(
    "invoice_settlements_total",
    "Invoice payment attempts",
    ["outcome"],  # paid | rejected
)

code_redemption_counter = Counter(
    "code_redemptions_total",
    "Redemption code attempts",
    ["outcome"],  # redeemed | rejected
)

card_payment_counter = Counter(
    "card_payments_total",
    "Card-authorised business payments",
    ["outcome"],  # paid | rejected
)

# Ads metrics
ad_event_counter = Counter(
    "ad_events_total",
    "Ad pipeline events",
    ["event"],  # served | no_fill | started | viewable | click
)

ad_spend_counter = Counter(
    "ad_spend_micros_total",
    "Advertiser budget spent on viewable impressions",
)

# Infrastructure
storage_failure_counter = Counter(
    "storage_failures_total",
    "Database errors that aborted a unit of work",
)

identity_failure_counter = Counter(
    "identity_verify_failures_total",
    "Failed identity provider calls",
)

request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_ledger_entry(kind: str, amount_micros: int) -> None:
    """Count a ledger write and the value it moved"""
    ledger_entries_counter.labels(kind=kind).inc()
    ledger_amount_counter.labels(kind=kind).inc(amount_micros)
