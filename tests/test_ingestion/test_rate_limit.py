"""Tests for the rate-limit governor."""

from email.utils import formatdate

import pytest

from reddit_feed.ingestion.rate_limit import RateLimitGovernor, parse_retry_after


class FixedJitter:
    """Stand-in for random.Random returning scripted uniform() draws."""

    def __init__(self, *values: float):
        self._values = list(values)
        self._last = values[-1] if values else 1.0

    def uniform(self, a: float, b: float) -> float:
        value = self._values.pop(0) if self._values else self._last
        assert a <= value <= b
        return value


def make_governor(clock, *jitter: float, **kwargs) -> RateLimitGovernor:
    return RateLimitGovernor(clock=clock, rng=FixedJitter(*(jitter or (1.0,))), **kwargs)


class TestRetryAfterWindow:
    """Tests for explicit Retry-After handling."""

    def test_uses_hint_verbatim(self, clock):
        """Should cool down for exactly the hinted duration."""
        governor = make_governor(clock)

        window = governor.record_failure(retry_after=30)

        assert window == 30
        assert governor.should_suppress()
        clock.advance(29.9)
        assert governor.should_suppress()
        clock.advance(0.1)
        assert not governor.should_suppress()

    def test_hint_leaves_counter_alone(self, clock):
        """Should not count a hinted failure toward the burst."""
        governor = make_governor(clock)

        governor.record_failure(retry_after=30)
        assert governor.consecutive_errors == 0

    def test_expiry_clears_state(self, clock):
        """Should reset the limited flag once the deadline passes."""
        governor = make_governor(clock)
        governor.record_failure(retry_after=5)

        clock.advance(6)
        assert not governor.should_suppress()
        state = governor.state
        assert state.is_rate_limited is False
        assert state.rate_limit_expiry == 0.0


class TestBackoffWindow:
    """Tests for backoff without a hint."""

    def test_first_failure(self, clock):
        """Should use base * 2 * jitter for the first failure."""
        governor = make_governor(clock, 1.0)

        assert governor.record_failure() == pytest.approx(10.0)
        assert governor.consecutive_errors == 1

    def test_burst_grows(self, clock):
        """Should double within the burst window."""
        governor = make_governor(clock, 1.0, 1.0, 1.0)

        first = governor.record_failure()
        clock.advance(5)
        second = governor.record_failure()
        clock.advance(5)
        third = governor.record_failure()

        assert (first, second, third) == pytest.approx((10.0, 20.0, 40.0))
        assert governor.consecutive_errors == 3

    def test_burst_never_shrinks(self, clock):
        """Should grow even when jitter draws low after a high draw."""
        governor = make_governor(clock, 1.5, 0.5)

        first = governor.record_failure()
        clock.advance(1)
        second = governor.record_failure()

        assert first == pytest.approx(15.0)
        assert second > first
        assert second == pytest.approx(20.0)

    def test_counter_resets_outside_burst(self, clock):
        """Should start a new burst after the burst window."""
        governor = make_governor(clock, 1.0)

        governor.record_failure()
        clock.advance(11)
        window = governor.record_failure()

        assert governor.consecutive_errors == 1
        assert window == pytest.approx(10.0)

    def test_capped_at_max(self, clock):
        """Should never exceed max_backoff."""
        governor = make_governor(clock, 1.5, max_backoff=600.0)

        windows = []
        for _ in range(12):
            windows.append(governor.record_failure())
            clock.advance(1)

        assert max(windows) == 600.0
        assert all(w <= 600.0 for w in windows)

    def test_jitter_bounds(self, clock):
        """Should stay within [0.5, 1.5] of the nominal window."""
        governor = RateLimitGovernor(clock=clock)

        window = governor.record_failure()
        assert 5.0 <= window <= 15.0

    def test_success_resets_counter(self, clock):
        """Should reset the burst counter on success."""
        governor = make_governor(clock, 1.0)
        governor.record_failure()
        clock.advance(1)
        governor.record_failure()

        governor.record_success()

        assert governor.consecutive_errors == 0


class TestSuppression:
    """Tests for request gating."""

    def test_idle_governor_allows_requests(self, clock):
        """Should not suppress before any failure."""
        governor = make_governor(clock)
        assert not governor.should_suppress()
        assert not governor.check()
        assert governor.remaining() == 0.0

    def test_check_during_cooldown(self, clock):
        """Should report suppression while cooling down."""
        governor = make_governor(clock)
        governor.record_failure(retry_after=60)

        clock.advance(20)
        assert governor.check()
        assert governor.remaining() == pytest.approx(40.0)

    def test_reset(self, clock):
        """Should clear everything on reset."""
        governor = make_governor(clock)
        governor.record_failure()
        governor.reset()

        assert not governor.should_suppress()
        assert governor.consecutive_errors == 0

    def test_from_settings(self, test_settings, clock):
        """Should take its parameters from settings."""
        governor = RateLimitGovernor.from_settings(test_settings, clock=clock)

        assert governor.base_backoff == test_settings.rate_limit_base_backoff_seconds
        assert governor.max_backoff == test_settings.rate_limit_max_backoff_seconds
        assert governor.burst_window == test_settings.rate_limit_burst_window_seconds


class TestParseRetryAfter:
    """Tests for parse_retry_after."""

    def test_seconds(self):
        """Should parse delay-seconds."""
        assert parse_retry_after("120") == 120.0
        assert parse_retry_after(" 7 ") == 7.0

    def test_missing(self):
        """Should fall back to the default when absent."""
        assert parse_retry_after(None) == 60.0
        assert parse_retry_after(None, default=15) == 15

    def test_unparseable(self):
        """Should fall back to the default for garbage."""
        assert parse_retry_after("soon") == 60.0
        assert parse_retry_after("") == 60.0
        assert parse_retry_after("inf") == 60.0

    def test_fractional_and_signed_seconds(self):
        """Should accept fractional seconds and read negatives as no wait."""
        assert parse_retry_after("1.5") == 1.5
        assert parse_retry_after("+30") == 30.0
        assert parse_retry_after("-5") == 0.0

    def test_http_date(self):
        """Should convert an HTTP date into seconds from now."""
        now = 1_700_000_000.0
        header = formatdate(now + 120, usegmt=True)

        assert parse_retry_after(header, now=now) == 120.0

    def test_http_date_floor(self):
        """Should floor past or imminent dates at 10 seconds."""
        now = 1_700_000_000.0

        assert parse_retry_after(formatdate(now - 300, usegmt=True), now=now) == 10.0
        assert parse_retry_after(formatdate(now + 3, usegmt=True), now=now) == 10.0
