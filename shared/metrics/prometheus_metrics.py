"""Prometheus metrics definitions and helpers.

Provides metric definitions for the HTTP surface and the data-access
layer (repository operations, remote asset searches, credit changes).
"""

import time
from contextlib import contextmanager
from typing import Callable, Iterator

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    REGISTRY,
    CollectorRegistry,
)


class HTTPMetrics:
    """HTTP request metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize HTTP metrics.

        Args:
            registry: Prometheus registry to use
        """
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=registry,
        )


class DataAccessMetrics:
    """Repository and gateway metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize data-access metrics.

        Args:
            registry: Prometheus registry to use
        """
        # Repository operations
        self.operations = Counter(
            "pixelyze_repository_operations_total",
            "Total repository operations",
            ["repository", "operation", "status"],
            registry=registry,
        )

        # Operation duration
        self.operation_duration = Histogram(
            "pixelyze_repository_operation_duration_seconds",
            "Time spent in repository operations",
            ["repository", "operation"],
            buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
            registry=registry,
        )

        # Credits spent or granted
        self.credits_changed = Counter(
            "pixelyze_credits_changed_total",
            "Absolute credit balance change",
            ["direction"],
            registry=registry,
        )

    @contextmanager
    def track(self, repository: str, operation: str) -> Iterator[None]:
        """Count and time one repository operation."""
        start = time.perf_counter()
        status = "success"
        try:
            yield
        except Exception:
            status = "error"
            raise
        finally:
            self.operations.labels(repository=repository, operation=operation, status=status).inc()
            self.operation_duration.labels(repository=repository, operation=operation).observe(
                time.perf_counter() - start
            )


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> tuple[HTTPMetrics, DataAccessMetrics]:
    """Setup and return metric instances.

    Returns:
        Tuple of (HTTPMetrics, DataAccessMetrics)
    """
    return HTTPMetrics(registry), DataAccessMetrics(registry)


def get_metrics_handler(registry: CollectorRegistry = REGISTRY) -> Callable[[], bytes]:
    """Get metrics handler for HTTP endpoint.

    Returns:
        Function that generates Prometheus metrics output
    """

    def metrics_handler() -> bytes:
        return generate_latest(registry)

    return metrics_handler
