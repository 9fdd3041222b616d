"""Infrastructure layer - cross-cutting concerns."""

from friends_db.infrastructure.config import Config, get_config
from friends_db.infrastructure.logging import setup_logging, get_logger
from friends_db.infrastructure.metrics import setup_metrics, MetricsRegistry
from friends_db.infrastructure.tracing import setup_tracing, get_tracer

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "setup_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
]
