"""Prometheus metrics definitions for the gitlite engine.

Metrics follow the naming convention: gitlite_<subsystem>_<name>_<unit>

Categories:
- Operation metrics: duration, total count by outcome
- Transport metrics: failures by kind
"""

from prometheus_client import Counter, Histogram

# -----------------------------------------------------------------------------
# Operation metrics
# -----------------------------------------------------------------------------

OPERATION_DURATION = Histogram(
    "gitlite_operation_duration_seconds",
    "Engine operation duration",
    ["operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

OPERATIONS_TOTAL = Counter(
    "gitlite_operations_total",
    "Total number of engine operations",
    ["operation", "outcome"],
)

# -----------------------------------------------------------------------------
# Transport metrics
# -----------------------------------------------------------------------------

TRANSPORT_FAILURES = Counter(
    "gitlite_transport_failures_total",
    "Fetch/push failures by error kind",
    ["operation", "kind"],
)
