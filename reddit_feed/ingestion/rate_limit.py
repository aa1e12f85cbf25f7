"""
Rate-limit governor for upstream listing requests.

Tracks a cool-down deadline and a burst counter of correlated failures.
Every request path asks should_suppress() first; responses report back
through record_success() / record_failure().

Backoff without an explicit hint:
    min(max_backoff, base * 2^consecutive_errors * jitter), jitter in [0.5, 1.5]

Within a burst the window also grows by at least ``base`` over the
previous one, so a low jitter draw cannot shrink it.
"""

import logging
import math
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from email.utils import parsedate_to_datetime

from reddit_feed.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60.0
MIN_DATE_RETRY_AFTER_SECONDS = 10.0


@dataclass
class RateLimitState:
    """Snapshot of governor state (times in clock seconds)."""

    is_rate_limited: bool = False
    rate_limit_expiry: float = 0.0
    consecutive_errors: int = 0
    last_error_time: float | None = None
    last_window: float = 0.0


class RateLimitGovernor:
    """
    Cool-down tracker with exponential backoff and jitter.

    One instance per independent client; instances share nothing, and
    jitter keeps independent instances from retrying in lockstep.

    Usage:
        governor = RateLimitGovernor()
        if governor.should_suppress():
            raise RateLimitedError(...)
        response = await client.get(url)
        if response.status_code == 429:
            governor.record_failure(parse_retry_after(response.headers.get("retry-after")))
        else:
            governor.record_success()
    """

    def __init__(
        self,
        base_backoff: float = 5.0,
        max_backoff: float = 600.0,
        burst_window: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        self.base_backoff = base_backoff
        self.max_backoff = max_backoff
        self.burst_window = burst_window
        self._clock = clock
        self._rng = rng or random.Random()
        self._state = RateLimitState()
        self._metrics = get_metrics()

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "RateLimitGovernor":
        return cls(
            base_backoff=settings.rate_limit_base_backoff_seconds,
            max_backoff=settings.rate_limit_max_backoff_seconds,
            burst_window=settings.rate_limit_burst_window_seconds,
            **kwargs,
        )

    @property
    def state(self) -> RateLimitState:
        return RateLimitState(**vars(self._state))

    @property
    def consecutive_errors(self) -> int:
        return self._state.consecutive_errors

    def remaining(self) -> float:
        """Seconds left in the active cool-down (0 when not limited)."""
        if not self.should_suppress():
            return 0.0
        return self._state.rate_limit_expiry - self._clock()

    def should_suppress(self) -> bool:
        """True while inside an active cool-down window."""
        state = self._state
        if not state.is_rate_limited:
            return False
        if self._clock() < state.rate_limit_expiry:
            return True
        # Deadline passed
        state.is_rate_limited = False
        state.rate_limit_expiry = 0.0
        logger.info("Rate-limit cool-down expired")
        return False

    def check(self) -> bool:
        """should_suppress() that also counts the skipped request."""
        suppressed = self.should_suppress()
        if suppressed:
            self._metrics.record_suppressed()
        return suppressed

    def record_success(self) -> None:
        self._state.consecutive_errors = 0
        self._state.last_window = 0.0

    def record_failure(self, retry_after: float | None = None) -> float:
        """
        Enter a cool-down window.

        Args:
            retry_after: Upstream-supplied wait in seconds; used verbatim
                and leaves the burst counter untouched

        Returns:
            Length of the cool-down window in seconds
        """
        now = self._clock()
        state = self._state

        if retry_after is not None:
            window = max(0.0, float(retry_after))
            trigger = "retry_after"
        else:
            in_burst = (
                state.last_error_time is not None
                and now - state.last_error_time <= self.burst_window
            )
            state.consecutive_errors = state.consecutive_errors + 1 if in_burst else 1
            state.last_error_time = now

            jitter = self._rng.uniform(0.5, 1.5)
            window = self.base_backoff * (2**state.consecutive_errors) * jitter
            if in_burst:
                window = max(window, state.last_window + self.base_backoff)
            window = min(self.max_backoff, window)
            state.last_window = window
            trigger = "backoff"

        state.is_rate_limited = True
        state.rate_limit_expiry = now + window
        self._metrics.record_cooldown(trigger, window)
        logger.warning(
            f"Rate-limit cool-down for {window:.1f}s "
            f"({trigger}, consecutive_errors={state.consecutive_errors})"
        )
        return window

    def reset(self) -> None:
        self._state = RateLimitState()


def parse_retry_after(
    value: str | None,
    default: float = DEFAULT_RETRY_AFTER_SECONDS,
    now: float | None = None,
) -> float:
    """
    Parse a Retry-After header.

    Accepts delay-seconds (fractions allowed, negatives read as 0) or an
    HTTP date. Dates in the past or very near future are floored at 10s;
    anything unparseable yields ``default``.

    Args:
        value: Raw header value (may be None)
        default: Fallback wait in seconds
        now: Wall-clock epoch seconds for date arithmetic (tests)
    """
    if value is None:
        return default
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return max(0.0, seconds) if math.isfinite(seconds) else default

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if retry_at is None:
        return default

    current = time.time() if now is None else now
    return max(MIN_DATE_RETRY_AFTER_SECONDS, float(math.ceil(retry_at.timestamp() - current)))
