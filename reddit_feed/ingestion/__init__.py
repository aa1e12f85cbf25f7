"""Ingestion layer - HTTP, rate limiting, fetching and media resolution."""

from reddit_feed.ingestion.fetcher import (
    DEFAULT_SORT_VARIANTS,
    FetchOutcome,
    SortVariant,
    SourceFetcher,
    parse_sort_variants,
)
from reddit_feed.ingestion.http_client import HTTPClient, RetryConfig, with_retry
from reddit_feed.ingestion.rate_limit import RateLimitGovernor, parse_retry_after
from reddit_feed.ingestion.resolver import MediaResolver, MediaRule, clean_url, resolve
from reddit_feed.ingestion.schemas import FeedResult, MediaKind, ResolvedPost, SourceResult

__all__ = [
    "DEFAULT_SORT_VARIANTS",
    "FeedResult",
    "FetchOutcome",
    "HTTPClient",
    "MediaKind",
    "MediaResolver",
    "MediaRule",
    "RateLimitGovernor",
    "ResolvedPost",
    "RetryConfig",
    "SortVariant",
    "SourceFetcher",
    "SourceResult",
    "clean_url",
    "parse_retry_after",
    "parse_sort_variants",
    "resolve",
    "with_retry",
]
