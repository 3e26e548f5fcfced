"""
Observability components.

Provides operation-scoped logging context and per-operation metrics.
"""

from .logging import (
    ContextualLoggerAdapter,
    get_logger,
    get_logging_context,
    log_operation,
    operation_context,
)
from .metrics import (
    MetricsCollector,
    OperationStats,
    get_metrics_collector,
    timed_operation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "OperationStats",
    "get_metrics_collector",
    "timed_operation",
    # Logging
    "ContextualLoggerAdapter",
    "get_logger",
    "get_logging_context",
    "log_operation",
    "operation_context",
]
