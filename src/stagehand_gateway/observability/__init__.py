"""Observability infrastructure for the gateway.

Structured logging, Prometheus metrics, and request-id correlation
middleware.

Quick start::

    from stagehand_gateway.observability import configure_logging, get_logger
    from stagehand_gateway.observability.middleware import (
        MetricsMiddleware,
        RequestIdMiddleware,
        RequestLoggingMiddleware,
    )

    configure_logging()
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import configure_logging, get_logger, request_id_ctx, session_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "request_id_ctx",
    "session_id_ctx",
]
