"""Prometheus metrics for the gateway.

Session metrics mirror the registry and teardown paths so that leaked
sessions (opened but never torn down) show up as a drift between
``gateway_sessions_opened_total`` and ``gateway_session_teardowns_total``.

Usage::

    from stagehand_gateway.observability.metrics import SESSIONS_OPENED_TOTAL

    SESSIONS_OPENED_TOTAL.inc()
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "http_server_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request latency in seconds (SSE streams count their full lifetime).",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 60.0, 600.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "http_server_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Session lifecycle metrics
# ---------------------------------------------------------------------------

SESSIONS_ACTIVE = Gauge(
    "gateway_sessions_active",
    "Sessions currently present in the session registry.",
    registry=REGISTRY,
)

SESSIONS_OPENED_TOTAL = Counter(
    "gateway_sessions_opened_total",
    "Stream-open requests that produced a registered session.",
    registry=REGISTRY,
)

SESSIONS_REJECTED_TOTAL = Counter(
    "gateway_sessions_rejected_total",
    "Stream-open requests rejected before registration.",
    labelnames=["reason"],
    registry=REGISTRY,
)

SESSION_TEARDOWNS_TOTAL = Counter(
    "gateway_session_teardowns_total",
    "Completed session teardowns by the terminal event that triggered them.",
    labelnames=["trigger"],
    registry=REGISTRY,
)

TEARDOWN_STEP_FAILURES_TOTAL = Counter(
    "gateway_teardown_step_failures_total",
    "Teardown steps that failed and were logged instead of raised.",
    labelnames=["step"],
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Message routing metrics
# ---------------------------------------------------------------------------

MESSAGES_ROUTED_TOTAL = Counter(
    "gateway_messages_routed_total",
    "Message-post requests by routing outcome.",
    labelnames=["outcome"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
