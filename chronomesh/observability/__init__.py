"""
Observability module: Metrics and structured logging.
"""

from chronomesh.observability.metrics import (
    MetricsCollector,
    Counter,
    Histogram,
    QueryMetrics,
)
from chronomesh.observability.logging import (
    StructuredLogger,
    JsonFormatter,
    LogLevel,
    query_scope,
    scope_fields,
    setup_logging,
)

__all__ = [
    "MetricsCollector",
    "Counter",
    "Histogram",
    "QueryMetrics",
    "StructuredLogger",
    "JsonFormatter",
    "LogLevel",
    "query_scope",
    "scope_fields",
    "setup_logging",
]
