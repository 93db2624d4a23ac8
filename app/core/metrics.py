"""Application metrics using the Prometheus client library.

All metrics live in this one module so there is a single inventory of
what the service measures.  Other modules import a metric and
increment/observe it at the point of action.

  COUNTER   — only goes up; dashboards take rate() over it.
  GAUGE     — goes up and down; a snapshot of current state.
  HISTOGRAM — observations grouped into buckets; feeds percentiles.

Prometheus scrapes GET /metrics (see app/api/metrics_endpoint.py).
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Progress ledger metrics
# ---------------------------------------------------------------------------

PROGRESS_EVENTS = Counter(
    "progress_events_total",
    "Lesson progress reports by outcome",
    # recorded|not_enrolled|unknown_lesson|gate_denied|invalid
    ["result"],
)

GATE_DENIALS = Counter(
    "consistency_gate_denials_total",
    "Completion attempts rejected because a prerequisite was incomplete",
)

ENROLLMENT_COMPLETIONS = Counter(
    "enrollment_completions_total",
    "Enrollments whose derived progress reached 100 for the first time",
)

RECOMPUTE_DURATION = Histogram(
    "enrollment_recompute_seconds",
    "Time spent recomputing one enrollment aggregate",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)
