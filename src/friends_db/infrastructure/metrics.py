"""Prometheus metrics for the friends database."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all friends database metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Request metrics
        self.requests_total = Counter(
            "friends_db_requests_total",
            "Total number of requests issued against collections",
            ["operation", "status"],  # add/get/get_all/delete, success/error
            registry=self._registry,
        )

        self.request_latency_seconds = Histogram(
            "friends_db_request_latency_seconds",
            "Engine time spent executing a request",
            ["operation"],
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.5, 1.0),
            registry=self._registry,
        )

        # Transaction metrics
        self.transactions_total = Counter(
            "friends_db_transactions_total",
            "Total number of finished transactions",
            ["mode", "status"],  # readonly/readwrite, commit/abort
            registry=self._registry,
        )

        self.transactions_active = Gauge(
            "friends_db_transactions_active",
            "Number of transactions that have not finished yet",
            registry=self._registry,
        )

        # Connection metrics
        self.upgrades_total = Counter(
            "friends_db_upgrades_total",
            "Total number of schema upgrades run",
            registry=self._registry,
        )

        self.open_failures_total = Counter(
            "friends_db_open_failures_total",
            "Total number of failed database opens",
            registry=self._registry,
        )

        self.schema_version = Gauge(
            "friends_db_schema_version",
            "Schema version of the open database",
            registry=self._registry,
        )

        self.info = Info(
            "friends_db",
            "Friends database information",
            registry=self._registry,
        )


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up Prometheus metrics server.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from friends_db import __version__
    _metrics.info.info({
        "version": __version__,
    })

    start_http_server(port, registry=registry or REGISTRY)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
