"""Tests for the feed poller."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from reddit_feed.feed.poller import FeedPoller
from reddit_feed.ingestion.rate_limit import RateLimitGovernor
from reddit_feed.ingestion.schemas import FeedResult


@pytest.fixture
def governor(clock):
    return RateLimitGovernor(clock=clock)


@pytest.fixture
def assembler(governor):
    mock = MagicMock()
    mock.governor = governor
    mock.assemble = AsyncMock(return_value=FeedResult(results=[]))
    return mock


class TestFeedPoller:
    """Tests for FeedPoller."""

    def test_interval_floor(self, assembler, test_settings):
        """Should never poll faster than the minimum interval."""
        poller = FeedPoller(assembler, ["pics"], interval=5, settings=test_settings)
        assert poller.interval == test_settings.min_poll_interval_seconds

    def test_default_interval(self, assembler, test_settings):
        """Should use the configured interval by default."""
        poller = FeedPoller(assembler, ["pics"], settings=test_settings)
        assert poller.interval == test_settings.poll_interval_seconds

    @pytest.mark.asyncio
    async def test_run_once(self, assembler, test_settings):
        """Should assemble and hand the feed to the callback."""
        received = []
        poller = FeedPoller(assembler, ["pics", "aww"], on_feed=received.append, settings=test_settings)

        feed = await poller.run_once()

        assembler.assemble.assert_awaited_once_with(["pics", "aww"])
        assert received == [feed]
        assert poller.last_feed is feed

    @pytest.mark.asyncio
    async def test_async_callback(self, assembler, test_settings):
        """Should await coroutine callbacks."""
        callback = AsyncMock()
        poller = FeedPoller(assembler, ["pics"], on_feed=callback, settings=test_settings)

        await poller.run_once()

        callback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_skips_during_cooldown(self, assembler, governor, test_settings):
        """Should skip cycles while the governor is cooling down."""
        governor.record_failure(retry_after=60)
        poller = FeedPoller(assembler, ["pics"], settings=test_settings)

        assert await poller.run_once() is None
        assembler.assemble.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_until_stopped(self, assembler, test_settings):
        """Should keep cycling until stop() and sleep between cycles."""
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) == 2:
                await poller.stop()

        poller = FeedPoller(assembler, ["pics"], settings=test_settings, sleep=fake_sleep)
        await poller.start()

        assert assembler.assemble.await_count == 2
        assert sleeps == [poller.interval, poller.interval]
        assert not poller.running

    @pytest.mark.asyncio
    async def test_cycle_error_does_not_stop(self, assembler, test_settings):
        """Should survive a failing cycle."""
        assembler.assemble.side_effect = [RuntimeError("boom"), FeedResult(results=[])]

        async def fake_sleep(seconds):
            if assembler.assemble.await_count == 2:
                await poller.stop()

        poller = FeedPoller(assembler, ["pics"], settings=test_settings, sleep=fake_sleep)
        await poller.start()

        assert assembler.assemble.await_count == 2
        assert poller.last_feed is not None
