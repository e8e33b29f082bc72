"""Logging and metrics for the news monitor."""

from news_monitor.observability.logging import log_context, setup_logging
from news_monitor.observability.metrics import MetricsCollector, get_metrics

__all__ = [
    "MetricsCollector",
    "log_context",
    "get_metrics",
    "setup_logging",
]
