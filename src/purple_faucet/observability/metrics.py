"""Prometheus metrics for the faucet.

Metrics:
- purple_requests_total: Counter of faucet operations by operation and status
- purple_paid_out_wei_total: Counter of wei sent as payouts
- purple_funded_wei_total: Counter of wei received into the pool
- purple_owner_top_ups_total: Counter of owner fee top-ups
- purple_pool_balance_wei: Gauge of the pool balance
- purple_paused: Gauge, 1 while withdrawals are paused
- purple_request_duration_seconds: Histogram of operation duration
"""

from prometheus_client import Counter, Gauge, Histogram

# Counters
REQUESTS = Counter(
    "purple_requests_total",
    "Total number of faucet operations",
    ["operation", "status"],
)

PAID_OUT = Counter(
    "purple_paid_out_wei_total",
    "Total wei sent to recipients as payouts",
)

FUNDED = Counter(
    "purple_funded_wei_total",
    "Total wei received into the pool",
)

OWNER_TOP_UPS = Counter(
    "purple_owner_top_ups_total",
    "Total owner fee top-ups sent from the pool",
)

# Gauges
POOL_BALANCE = Gauge(
    "purple_pool_balance_wei",
    "Current pool balance in wei",
)

PAUSED = Gauge(
    "purple_paused",
    "1 while faucet withdrawals are paused, 0 otherwise",
)

# Histograms
REQUEST_DURATION = Histogram(
    "purple_request_duration_seconds",
    "Faucet operation duration",
    ["operation"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0),
)
