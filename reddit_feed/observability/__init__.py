"""Observability layer - logging and metrics."""

from reddit_feed.observability.logging import bind_context, clear_context, mask_token, setup_logging
from reddit_feed.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "bind_context", "clear_context", "mask_token", "MetricsCollector", "get_metrics"]
