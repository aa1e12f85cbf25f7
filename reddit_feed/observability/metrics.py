"""
Prometheus metrics for the content-acquisition pipeline.

Defines and exposes metrics for:
- Token refresh outcomes
- Per-source and per-variant fetch results
- Media resolution by rule
- Rate-limit cool-downs

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from reddit_feed.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the reddit-feed pipeline.

    Usage:
        metrics = get_metrics()
        metrics.record_token_refresh("success")
        metrics.record_variant_response("pics", status=200)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Token lifecycle
        self.token_refreshes = Counter(
            "reddit_feed_token_refreshes_total",
            "Token refresh attempts by outcome",
            ["outcome"],  # success, failed, timeout, memoized, reused
        )

        self.token_refresh_latency = Histogram(
            "reddit_feed_token_refresh_seconds",
            "Latency of refresh endpoint calls",
            buckets=LATENCY_BUCKETS,
        )

        # Fetching
        self.source_fetches = Counter(
            "reddit_feed_source_fetches_total",
            "Source fetches by outcome",
            ["outcome"],  # ok, partial, error
        )

        self.variant_requests = Counter(
            "reddit_feed_variant_requests_total",
            "Sort-variant listing requests by status class",
            ["status_class"],  # 2xx, 4xx, 429, 5xx, network
        )

        self.fetch_latency = Histogram(
            "reddit_feed_fetch_seconds",
            "Latency of a full source fetch across all sort variants",
            buckets=LATENCY_BUCKETS,
        )

        # Resolution
        self.posts_resolved = Counter(
            "reddit_feed_posts_resolved_total",
            "Posts resolved by the matching media rule",
            ["rule"],
        )

        self.posts_dropped = Counter(
            "reddit_feed_posts_dropped_total",
            "Posts dropped during resolution or deduplication",
            ["reason"],  # removed, unresolvable, duplicate
        )

        # Rate limiting
        self.rate_limit_cooldowns = Counter(
            "reddit_feed_rate_limit_cooldowns_total",
            "Cool-down windows entered",
            ["trigger"],  # retry_after, backoff
        )

        self.suppressed_requests = Counter(
            "reddit_feed_suppressed_requests_total",
            "Requests skipped because a cool-down was active",
        )

        self.cooldown_seconds = Gauge(
            "reddit_feed_rate_limit_cooldown_seconds",
            "Length of the most recent cool-down window",
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_token_refresh(self, outcome: str, latency: float | None = None) -> None:
        """
        Record a token refresh outcome.

        Args:
            outcome: success, failed, timeout, memoized or reused
            latency: Optional endpoint latency in seconds
        """
        self.token_refreshes.labels(outcome=outcome).inc()
        if latency is not None:
            self.token_refresh_latency.observe(latency)

    def record_variant_response(self, status: int | None) -> None:
        """
        Record one sort-variant response.

        Args:
            status: HTTP status, or None for a transport failure
        """
        if status is None:
            status_class = "network"
        elif status == 429:
            status_class = "429"
        else:
            status_class = f"{status // 100}xx"
        self.variant_requests.labels(status_class=status_class).inc()

    def record_source_fetch(self, outcome: str, latency: float | None = None) -> None:
        """Record a source fetch outcome (ok, partial, error)."""
        self.source_fetches.labels(outcome=outcome).inc()
        if latency is not None:
            self.fetch_latency.observe(latency)

    def record_resolution(self, rule: str | None) -> None:
        """Record a resolved post by rule name, or an unresolvable one."""
        if rule is None:
            self.posts_dropped.labels(reason="unresolvable").inc()
        else:
            self.posts_resolved.labels(rule=rule).inc()

    def record_dropped(self, reason: str, count: int = 1) -> None:
        """Record posts dropped for a reason other than resolution."""
        if count:
            self.posts_dropped.labels(reason=reason).inc(count)

    def record_cooldown(self, trigger: str, seconds: float) -> None:
        """Record a cool-down window being entered."""
        self.rate_limit_cooldowns.labels(trigger=trigger).inc()
        self.cooldown_seconds.set(seconds)

    def record_suppressed(self) -> None:
        """Record a request skipped by an active cool-down."""
        self.suppressed_requests.inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
