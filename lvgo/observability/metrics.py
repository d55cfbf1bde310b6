"""Prometheus Metrics - node and session observability.

Exports:
- Connected node count and reconnect attempts
- Active player count
- Session resume outcomes
- REST request latency and errors
"""

from prometheus_client import Counter, Gauge, Histogram

# -----------------------------------------------------------------------------
# Histograms
# -----------------------------------------------------------------------------

REST_LATENCY = Histogram(
    "lvgo_rest_request_seconds",
    "Node REST request latency",
    ["method"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# -----------------------------------------------------------------------------
# Counters
# -----------------------------------------------------------------------------

REST_ERRORS = Counter(
    "lvgo_rest_errors_total",
    "Node REST requests that failed",
    ["status"],  # HTTP status, 408 for timeouts
)

NODE_RECONNECTS = Counter(
    "lvgo_node_reconnects_total",
    "Node reconnect attempts",
    ["node"],
)

NODE_DISCONNECTS = Counter(
    "lvgo_node_disconnects_total",
    "Nodes given up after exhausting reconnects",
    ["node"],
)

SESSION_RESUMES = Counter(
    "lvgo_session_resumes_total",
    "Session resume outcomes",
    ["outcome"],  # resumed, failed, skipped
)

# -----------------------------------------------------------------------------
# Gauges
# -----------------------------------------------------------------------------

CONNECTED_NODES = Gauge(
    "lvgo_connected_nodes",
    "Nodes currently connected",
)

ACTIVE_PLAYERS = Gauge(
    "lvgo_active_players",
    "Players currently tracked",
)


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def record_rest_request(method: str, latency_s: float) -> None:
    """Record a completed REST request."""
    REST_LATENCY.labels(method=method).observe(latency_s)


def record_rest_error(status: int) -> None:
    """Record a failed REST request."""
    REST_ERRORS.labels(status=str(status)).inc()


def record_node_connected() -> None:
    """Record node entering the connected state."""
    CONNECTED_NODES.inc()


def record_node_lost() -> None:
    """Record node leaving the connected state."""
    CONNECTED_NODES.dec()


def record_node_reconnect(node: str) -> None:
    """Record a reconnect attempt."""
    NODE_RECONNECTS.labels(node=node).inc()


def record_node_disconnect(node: str) -> None:
    """Record a node given up."""
    NODE_DISCONNECTS.labels(node=node).inc()


def record_session_resume(outcome: str) -> None:
    """Record a session resume outcome."""
    SESSION_RESUMES.labels(outcome=outcome).inc()


def update_active_players(count: int) -> None:
    """Update active player gauge."""
    ACTIVE_PLAYERS.set(count)
