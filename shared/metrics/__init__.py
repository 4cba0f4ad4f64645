"""Metrics module using Prometheus."""

from .prometheus_metrics import (
    HTTPMetrics,
    DataAccessMetrics,
    setup_metrics,
    get_metrics_handler,
)

__all__ = [
    "HTTPMetrics",
    "DataAccessMetrics",
    "setup_metrics",
    "get_metrics_handler",
]
