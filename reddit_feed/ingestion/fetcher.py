"""
Source fetcher for Reddit listings.

One source (subreddit) is fetched as several sort variants in parallel.
Variants settle independently: a failing variant never cancels its
siblings, and the source only fails when every variant failed.

Every request is gated by the RateLimitGovernor and reports its
outcome back to it:
    2xx        → record_success()
    429        → record_failure(retry_after)
    5xx / net  → record_failure()
    403 / 404  → terminal for this cycle, governor untouched
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from reddit_feed.config.settings import Settings, get_settings
from reddit_feed.errors import (
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    RedditFeedError,
    ServerFaultError,
    TransientNetworkError,
    UnauthenticatedError,
    UpstreamRejectionError,
)
from reddit_feed.ingestion.http_client import HTTPClient, RetryConfig, with_retry
from reddit_feed.ingestion.rate_limit import RateLimitGovernor, parse_retry_after
from reddit_feed.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

REDDIT_API_BASE = "https://oauth.reddit.com"


@dataclass(frozen=True)
class SortVariant:
    """
    One listing ordering, e.g. ``hot`` or ``top`` with ``t=day``.

    Params are stored as sorted pairs so variants are hashable.
    """

    path: str
    params: tuple[tuple[str, str], ...] = field(default=())

    @classmethod
    def parse(cls, value: str) -> "SortVariant":
        """
        Parse ``name``, ``name:timeframe`` or ``name?key=value``.

        Examples: "hot", "top:day", "top?t=week"
        """
        value = value.strip()
        if "?" in value:
            path, _, query = value.partition("?")
            pairs = [p.partition("=") for p in query.split("&") if p]
            return cls(path.strip("/"), tuple(sorted((k, v) for k, _, v in pairs)))
        if ":" in value:
            path, _, timeframe = value.partition(":")
            return cls(path.strip("/"), (("t", timeframe),))
        return cls(value.strip("/"))

    @property
    def label(self) -> str:
        if not self.params:
            return self.path
        return self.path + "?" + "&".join(f"{k}={v}" for k, v in self.params)


DEFAULT_SORT_VARIANTS: tuple[SortVariant, ...] = (
    SortVariant("hot"),
    SortVariant("top", (("t", "day"),)),
)


def parse_sort_variants(value: str) -> tuple[SortVariant, ...]:
    """Parse a comma-separated variant list (falls back to the defaults)."""
    variants = tuple(SortVariant.parse(v) for v in value.split(",") if v.strip())
    return variants or DEFAULT_SORT_VARIANTS


@dataclass
class FetchOutcome:
    """Raw records from one source plus the variants that failed."""

    source_name: str
    posts: list[dict[str, Any]] = field(default_factory=list)
    errors: list[RedditFeedError] = field(default_factory=list)
    variants_ok: int = 0

    @property
    def partial(self) -> bool:
        return bool(self.errors) and self.variants_ok > 0

    def primary_error(self) -> RedditFeedError | None:
        """The error to surface: rate limiting wins, else the first failure."""
        for error in self.errors:
            if isinstance(error, RateLimitedError):
                return error
        return self.errors[0] if self.errors else None


class SourceFetcher:
    """
    Fetch listing records for a source across sort variants.

    Usage:
        async with SourceFetcher(governor=governor) as fetcher:
            posts = await fetcher.fetch_source("pics", access_token=token)
    """

    def __init__(
        self,
        governor: RateLimitGovernor | None = None,
        http_client: HTTPClient | None = None,
        settings: Settings | None = None,
        sort_variants: tuple[SortVariant, ...] | None = None,
        retry_config: RetryConfig | None = None,
    ):
        """
        Initialize the fetcher.

        Args:
            governor: Shared rate-limit governor (one per client instance)
            http_client: HTTP client; created from settings when omitted
            settings: Settings override (defaults to get_settings())
            sort_variants: Variants used when fetch_source gets none
            retry_config: Per-variant retry policy
        """
        self._settings = settings or get_settings()
        self.governor = governor or RateLimitGovernor.from_settings(self._settings)
        self._http = http_client or HTTPClient(
            timeout=self._settings.http_timeout_seconds,
            user_agent=self._settings.reddit_user_agent,
        )
        self.api_base = self._settings.reddit_api_base.rstrip("/")
        self.limit = self._settings.listing_limit
        self.include_over_18 = self._settings.include_over_18
        self.sort_variants = sort_variants or parse_sort_variants(self._settings.sort_variants)
        self.retry_config = retry_config or RetryConfig(
            max_attempts=self._settings.fetch_max_attempts,
            max_backoff_seconds=self._settings.max_backoff_seconds,
        )
        self._metrics = get_metrics()

    async def __aenter__(self) -> "SourceFetcher":
        await self._http.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self._http.__aexit__(exc_type, exc_val, exc_tb)

    async def fetch_source(
        self,
        name: str,
        sort_variants: tuple[SortVariant, ...] | list[SortVariant] | None = None,
        *,
        access_token: str,
    ) -> list[dict[str, Any]]:
        """
        Fetch and flatten records for every sort variant of a source.

        Returns:
            All records from the variants that succeeded

        Raises:
            RedditFeedError: When every variant failed (rate limiting is
                preferred over other causes)
        """
        outcome = await self.fetch_source_detailed(name, sort_variants, access_token=access_token)
        if outcome.variants_ok == 0:
            error = outcome.primary_error()
            if error is not None:
                raise error
        return outcome.posts

    async def fetch_source_detailed(
        self,
        name: str,
        sort_variants: tuple[SortVariant, ...] | list[SortVariant] | None = None,
        *,
        access_token: str,
    ) -> FetchOutcome:
        """Like fetch_source, but returns partial failures instead of raising."""
        variants = tuple(sort_variants or self.sort_variants)
        start = time.monotonic()
        headers = {"Authorization": f"Bearer {access_token}"}
        if self._settings.reddit_user_agent:
            headers["User-Agent"] = self._settings.reddit_user_agent

        results = await asyncio.gather(
            *(self._fetch_variant(name, variant, headers) for variant in variants),
            return_exceptions=True,
        )

        outcome = FetchOutcome(source_name=name)
        for variant, result in zip(variants, results):
            if isinstance(result, RedditFeedError):
                logger.warning(f"r/{name} [{variant.label}] failed: {result.message}")
                outcome.errors.append(result)
            elif isinstance(result, Exception):
                logger.error(f"r/{name} [{variant.label}] unexpected error: {result}", exc_info=result)
                outcome.errors.append(TransientNetworkError(f"Failed to fetch r/{name}."))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcome.variants_ok += 1
                outcome.posts.extend(result)

        if outcome.variants_ok == 0:
            status = "error"
        elif outcome.errors:
            status = "partial"
        else:
            status = "ok"
        self._metrics.record_source_fetch(status, time.monotonic() - start)
        logger.debug(f"Fetched {len(outcome.posts)} records from r/{name} ({status})")
        return outcome

    async def _fetch_variant(
        self,
        name: str,
        variant: SortVariant,
        headers: dict[str, str],
    ) -> list[dict[str, Any]]:
        return await with_retry(
            lambda: self._request_variant(name, variant, headers),
            backoff=self.retry_config,
            operation=f"r/{name} [{variant.label}]",
        )

    async def _request_variant(
        self,
        name: str,
        variant: SortVariant,
        headers: dict[str, str],
    ) -> list[dict[str, Any]]:
        if self.governor.check():
            raise RateLimitedError(
                f"Reddit API rate limit hit for r/{name}.",
                retry_after=self.governor.remaining(),
                status_code=None,
            )

        params: dict[str, Any] = {"limit": self.limit, "raw_json": 1}
        if self.include_over_18:
            params["include_over_18"] = "on"
        params.update(dict(variant.params))

        url = f"{self.api_base}/r/{name}/{variant.path}"
        try:
            response = await self._http.get(url, params=params, headers=headers)
        except TransientNetworkError:
            self._metrics.record_variant_response(None)
            self.governor.record_failure()
            raise

        self._metrics.record_variant_response(response.status_code)
        return self._handle_response(name, response)

    def _handle_response(self, name: str, response: httpx.Response) -> list[dict[str, Any]]:
        status = response.status_code

        if 200 <= status < 300:
            self.governor.record_success()
            try:
                payload = response.json()
            except ValueError as e:
                raise TransientNetworkError(f"Malformed listing for r/{name}.") from e
            return extract_listing(payload)

        if status == 429:
            retry_after = parse_retry_after(response.headers.get("retry-after"))
            self.governor.record_failure(retry_after)
            raise RateLimitedError(
                f"Reddit API rate limit hit for r/{name}.",
                retry_after=retry_after,
            )
        if status == 401:
            raise UnauthenticatedError(
                f"Reddit rejected the access token for r/{name}.", status_code=status
            )
        if status == 403:
            raise ForbiddenError(
                f"Unable to access r/{name} - private or quarantined?", status_code=status
            )
        if status == 404:
            raise NotFoundError(f"Subreddit r/{name} not found.", status_code=status)
        if status >= 500:
            self.governor.record_failure()
            raise ServerFaultError(f"Reddit server error for r/{name}.", status_code=status)
        raise UpstreamRejectionError(
            f"Reddit API error {status} for r/{name}.", status_code=status
        )


def extract_listing(payload: Any) -> list[dict[str, Any]]:
    """Pull post ``data`` objects out of a Listing response."""
    if not isinstance(payload, dict):
        return []
    children = (payload.get("data") or {}).get("children") or []
    records = []
    for child in children:
        if not isinstance(child, dict):
            continue
        if child.get("kind", "t3") != "t3":
            continue
        data = child.get("data")
        if isinstance(data, dict):
            records.append(data)
    return records
