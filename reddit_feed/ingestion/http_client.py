"""
HTTP infrastructure layer shared by the fetch and token layers.

Provides:
- RetryConfig: Exponential backoff configuration
- with_retry: Bounded retry combinator parameterized over the operation
- HTTPClient: Async HTTP client that owns the connection pool and maps
  transport failures onto TransientNetworkError

Status-code interpretation stays with the callers (fetcher, token
clients); this layer only moves bytes and retries when told to.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

from reddit_feed.errors import ErrorCategory, RedditFeedError, TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for bounded retries.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))

    max_attempts counts the first call, so the default of 1 means
    "no retries": the caller's own refresh cycle is the retry loop.
    """

    max_attempts: int = 1
    max_backoff_seconds: float = 60.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff duration for a given retry attempt.

        Args:
            attempt: The retry attempt number (0-indexed)

        Returns:
            Backoff duration in seconds with jitter applied
        """
        delay = self.base_delay * (2**attempt)
        delay = min(delay, self.max_backoff_seconds)
        jitter = delay * self.jitter_factor * random.random()
        return delay + jitter

    def is_retryable_status(self, status_code: int) -> bool:
        """429 and the gateway-style 5xx codes are worth another try."""
        return status_code in {429, 500, 502, 503, 504}

    def is_retryable_exception(self, exc: BaseException) -> bool:
        """
        Check if an exception should trigger a retry.

        Transport failures (raw httpx or already mapped) and domain errors
        whose category is retryable qualify. Rate limiting is excluded;
        the governor owns that wait.
        """
        if isinstance(
            exc,
            (
                httpx.TimeoutException,
                httpx.ConnectError,
                httpx.ReadError,
            ),
        ):
            return True
        if isinstance(exc, RedditFeedError):
            return exc.retryable and exc.category != ErrorCategory.RATE_LIMITED
        return False


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int | None = None,
    backoff: RetryConfig | None = None,
    retry_on: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    operation: str = "request",
) -> T:
    """
    Await ``fn()`` up to ``max_attempts`` times.

    Args:
        fn: Zero-argument coroutine factory; called fresh on each attempt
        max_attempts: Overrides backoff.max_attempts when given
        backoff: Delay schedule between attempts
        retry_on: Predicate deciding whether an exception is retried
            (defaults to backoff.is_retryable_exception)
        sleep: Awaitable sleep, injectable for tests
        operation: Label used in log messages

    Returns:
        The first successful result

    Raises:
        The last exception once attempts are exhausted, or immediately
        for an exception retry_on rejects.
    """
    config = backoff or RetryConfig()
    attempts = max(1, max_attempts if max_attempts is not None else config.max_attempts)
    should_retry = retry_on or config.is_retryable_exception

    for attempt in range(attempts):
        try:
            return await fn()
        except Exception as e:
            if attempt + 1 >= attempts or not should_retry(e):
                raise
            delay = config.calculate_backoff(attempt)
            logger.warning(
                f"{operation} failed ({type(e).__name__}), "
                f"attempt {attempt + 1}/{attempts}, backing off {delay:.2f}s"
            )
            await sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover


class HTTPClient:
    """
    Async HTTP client wrapper owning a single httpx.AsyncClient.

    Example:
        async with HTTPClient(timeout=10.0, user_agent="reddit-feed/0.1") as client:
            response = await client.get("https://oauth.reddit.com/r/pics/hot")
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            timeout: Request timeout in seconds.
            user_agent: Default User-Agent header.
            client: Pre-built client to use instead of creating one; the
                caller keeps ownership and it is not closed on exit.
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self._client = client
        self._owns_client = client is None
        self._depth = 0

    async def __aenter__(self) -> "HTTPClient":
        """Enter async context manager, create client."""
        self._depth += 1
        if self._client is None:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client."""
        self._depth = max(0, self._depth - 1)
        if self._depth == 0:
            await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Perform one request; no status checking, no retries.

        Raises:
            TransientNetworkError: On timeout or connection failure
        """
        if self._client is None:
            raise RuntimeError("HTTPClient must be used as async context manager")

        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout on {method} {url}: {e}")
            raise TransientNetworkError(f"Request to {url} timed out") from e
        except httpx.TransportError as e:
            logger.warning(f"Transport error on {method} {url}: {e}")
            raise TransientNetworkError(f"Network error contacting {url}") from e
