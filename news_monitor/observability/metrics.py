"""
Prometheus metrics for the source monitor.

Defines and exposes metrics for:
- Feed fetch outcomes and latency
- Scheduler ticks
- Reorder persistence outcomes
- Auto-analysis results

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from news_monitor.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for fetch latency histograms (in seconds)
FETCH_LATENCY_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the news monitor.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_fetch(tier=2, outcome="success", latency=0.4)
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize Prometheus metrics.

        Args:
            registry: Registry to attach metrics to. A private registry is
                created when omitted so that multiple collectors can coexist.
        """
        self.registry = registry or CollectorRegistry()

        self.fetches = Counter(
            "news_monitor_fetches_total",
            "Total feed fetches by outcome",
            ["tier", "outcome"],  # outcome: success, error, deduplicated
            registry=self.registry,
        )

        self.fetch_latency = Histogram(
            "news_monitor_fetch_latency_seconds",
            "Time to fetch and parse a feed",
            ["tier"],
            buckets=FETCH_LATENCY_BUCKETS,
            registry=self.registry,
        )

        self.articles_fetched = Counter(
            "news_monitor_articles_fetched_total",
            "Articles stored in fetch state after a successful fetch",
            ["tier"],
            registry=self.registry,
        )

        self.sources_in_error = Gauge(
            "news_monitor_sources_in_error",
            "Number of sources whose last fetch failed",
            registry=self.registry,
        )

        self.scheduler_ticks = Counter(
            "news_monitor_scheduler_ticks_total",
            "Auto-refresh scheduler ticks",
            registry=self.registry,
        )

        self.reorders = Counter(
            "news_monitor_reorders_total",
            "Tier reorder attempts by outcome",
            ["outcome"],  # persisted, rolled_back
            registry=self.registry,
        )

        self.articles_analyzed = Counter(
            "news_monitor_articles_analyzed_total",
            "Articles sent for analysis by outcome",
            ["outcome"],  # analyzed, failed, skipped
            registry=self.registry,
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        port = port or get_settings().metrics_port
        start_http_server(port, registry=self.registry)
        logger.info(f"Metrics server started on port {port}")

    def record_fetch(self, tier: int, outcome: str, latency: float | None = None) -> None:
        """
        Record a single feed fetch.

        Args:
            tier: Tier of the fetched source
            outcome: success, error, or deduplicated
            latency: Fetch duration in seconds
        """
        self.fetches.labels(tier=str(tier), outcome=outcome).inc()
        if latency is not None:
            self.fetch_latency.labels(tier=str(tier)).observe(latency)

    def record_articles(self, tier: int, count: int) -> None:
        """Record articles kept after a successful fetch."""
        if count > 0:
            self.articles_fetched.labels(tier=str(tier)).inc(count)

    def set_sources_in_error(self, count: int) -> None:
        """Set the number of sources currently in the failed state."""
        self.sources_in_error.set(count)

    def record_tick(self) -> None:
        """Record an auto-refresh scheduler tick."""
        self.scheduler_ticks.inc()

    def record_reorder(self, outcome: str) -> None:
        """Record a tier reorder outcome (persisted or rolled_back)."""
        self.reorders.labels(outcome=outcome).inc()

    def record_analysis(self, outcome: str, count: int = 1) -> None:
        """Record auto-analysis outcomes."""
        if count > 0:
            self.articles_analyzed.labels(outcome=outcome).inc(count)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
