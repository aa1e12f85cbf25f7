"""
Feed poller - refreshes a feed on an interval.

Cycles are skipped (not queued) while the rate-limit governor is in a
cool-down, and the interval never drops below min_poll_interval_seconds.
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable

import structlog

from reddit_feed.config.settings import Settings, get_settings
from reddit_feed.feed.assembler import FeedAssembler
from reddit_feed.ingestion.schemas import FeedResult

logger = structlog.get_logger(__name__)

FeedCallback = Callable[[FeedResult], Awaitable[None] | None]


class FeedPoller:
    """
    Poll a fixed set of sources until stopped.

    Usage:
        poller = FeedPoller(assembler, ["pics", "aww"], on_feed=render)
        task = asyncio.create_task(poller.start())
        ...
        await poller.stop()
    """

    def __init__(
        self,
        assembler: FeedAssembler,
        source_names: list[str],
        on_feed: FeedCallback | None = None,
        interval: float | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = settings or get_settings()
        requested = interval if interval is not None else settings.poll_interval_seconds
        self.interval = max(float(settings.min_poll_interval_seconds), float(requested))
        self._assembler = assembler
        self._sources = list(source_names)
        self._on_feed = on_feed
        self._sleep = sleep
        self._running = False
        self._last_feed: FeedResult | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_feed(self) -> FeedResult | None:
        return self._last_feed

    async def start(self) -> None:
        """Run cycles until stop() is called."""
        self._running = True
        logger.info("Starting feed poller", sources=self._sources, interval=self.interval)

        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Feed poll cycle failed", error=str(e))

            if not self._running:
                break
            try:
                await self._sleep(self.interval)
            except asyncio.CancelledError:
                break

        self._running = False
        logger.info("Feed poller stopped")

    async def stop(self) -> None:
        self._running = False

    async def run_once(self) -> FeedResult | None:
        """
        Run one cycle.

        Returns:
            The assembled feed, or None if the cycle was skipped
        """
        governor = self._assembler.governor
        if governor.should_suppress():
            logger.info("Skipping feed cycle during rate-limit cool-down", remaining=round(governor.remaining(), 1))
            return None

        start = time.monotonic()
        feed = await self._assembler.assemble(self._sources)
        self._last_feed = feed
        logger.debug("Feed cycle complete", elapsed_seconds=round(time.monotonic() - start, 2))

        if self._on_feed is not None:
            result = self._on_feed(feed)
            if inspect.isawaitable(result):
                await result
        return feed
