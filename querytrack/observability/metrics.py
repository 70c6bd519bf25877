"""Prometheus metric definitions for QueryTrack self-instrumentation.

All metrics are module-level singletons registered with the default
prometheus_client registry.  Import them wherever instrumentation is needed.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ---------------------------------------------------------------------------
# Histogram bucket definitions
# ---------------------------------------------------------------------------

REQUEST_DURATION_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 15.0)

# ---------------------------------------------------------------------------
# Request-level metrics
# ---------------------------------------------------------------------------

REQUEST_DURATION = Histogram(
    "querytrack_request_duration_seconds",
    "End-to-end request duration in seconds",
    labelnames=["endpoint"],
    buckets=REQUEST_DURATION_BUCKETS,
)

REQUESTS_TOTAL = Counter(
    "querytrack_requests_total",
    "Total number of requests",
    labelnames=["endpoint", "status"],
)

# ---------------------------------------------------------------------------
# Backend gateway metrics
# ---------------------------------------------------------------------------

GATEWAY_CALLS_TOTAL = Counter(
    "querytrack_gateway_calls_total",
    "Total number of calls to the managed backend",
    labelnames=["operation", "status"],
)

# ---------------------------------------------------------------------------
# Import / export metrics
# ---------------------------------------------------------------------------

EXPORTS_TOTAL = Counter(
    "querytrack_exports_total",
    "Total number of generated exports",
    labelnames=["kind"],
)

IMPORTED_QUERIES_TOTAL = Counter(
    "querytrack_imported_queries_total",
    "Total number of queries inserted through spreadsheet import",
)

# ---------------------------------------------------------------------------
# Health / info metrics
# ---------------------------------------------------------------------------

COMPONENT_HEALTHY = Gauge(
    "querytrack_component_healthy",
    "Whether a dependency component is healthy (1=healthy, 0=unhealthy)",
    labelnames=["component"],
)

APP_INFO = Info(
    "querytrack",
    "QueryTrack build information",
)
