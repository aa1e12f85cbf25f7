"""Centralized exception hierarchy for the reddit-feed package.

Every domain error inherits from ``RedditFeedError`` and carries an
``ErrorCategory`` so callers can branch on the category without
matching concrete classes. Messages are user-facing; they end up on
``SourceResult.error`` and in notifications.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    """How a failure should be treated by the pipeline."""

    CONFIGURATION = "configuration"
    UNAUTHENTICATED = "unauthenticated"
    TRANSIENT_NETWORK = "transient_network"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_REJECTION = "upstream_rejection"
    SERVER_FAULT = "server_fault"


class RedditFeedError(Exception):
    """Base exception for all reddit-feed errors."""

    category: ErrorCategory = ErrorCategory.TRANSIENT_NETWORK

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Whether a later feed cycle may succeed without user action."""
        return self.category in (
            ErrorCategory.TRANSIENT_NETWORK,
            ErrorCategory.RATE_LIMITED,
            ErrorCategory.SERVER_FAULT,
        )


# ---------------------------------------------------------------------------
# Setup errors
# ---------------------------------------------------------------------------


class ConfigurationError(RedditFeedError):
    """Required client credentials are missing. Never retried."""

    category = ErrorCategory.CONFIGURATION


class UnauthenticatedError(RedditFeedError):
    """No usable credential; recoverable by user action only."""

    category = ErrorCategory.UNAUTHENTICATED


# ---------------------------------------------------------------------------
# Upstream errors
# ---------------------------------------------------------------------------


class TransientNetworkError(RedditFeedError):
    """Timeout or connection failure."""

    category = ErrorCategory.TRANSIENT_NETWORK


class RateLimitedError(RedditFeedError):
    """Upstream asked us to slow down (HTTP 429) or a cool-down is active."""

    category = ErrorCategory.RATE_LIMITED

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        status_code: int | None = 429,
    ):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class UpstreamRejectionError(RedditFeedError):
    """Terminal rejection of a source for this cycle (403/404)."""

    category = ErrorCategory.UPSTREAM_REJECTION


class ForbiddenError(UpstreamRejectionError):
    """Source is private, quarantined or otherwise not accessible."""


class NotFoundError(UpstreamRejectionError):
    """Source does not exist."""


class ServerFaultError(RedditFeedError):
    """Upstream 5xx; treated like a transient network failure."""

    category = ErrorCategory.SERVER_FAULT


# ---------------------------------------------------------------------------
# Token endpoint errors
# ---------------------------------------------------------------------------


class TokenEndpointError(RedditFeedError):
    """Non-2xx response from the authorization or refresh endpoint."""

    def __init__(self, message: str, status_code: int, body: str | None = None):
        super().__init__(message, status_code)
        self.body = body
        self.category = classify_status(status_code)

    @property
    def revokes_credential(self) -> bool:
        """400/401 mean the refresh token itself is dead."""
        return self.status_code in (400, 401)


def classify_status(status_code: int) -> ErrorCategory:
    """Map an HTTP status code onto an error category."""
    if status_code == 429:
        return ErrorCategory.RATE_LIMITED
    if status_code in (401,):
        return ErrorCategory.UNAUTHENTICATED
    if status_code in (403, 404):
        return ErrorCategory.UPSTREAM_REJECTION
    if status_code >= 500:
        return ErrorCategory.SERVER_FAULT
    return ErrorCategory.UPSTREAM_REJECTION
