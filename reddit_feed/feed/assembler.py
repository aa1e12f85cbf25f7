"""
Feed assembler - merges several sources into one ordered feed.

Per cycle:
1. One access token for the whole cycle (None → every source errors)
2. Sources fetched in parallel; one source failing never affects others
3. Records resolved, nulls dropped, deduplicated by post id (within a
   source, then across sources in request order)
4. Each source partitioned by the priority predicate; both classes are
   shuffled independently, priority class first

The feed counts as failed only when every source errored with no posts.
"""

import asyncio
import random
from collections.abc import Iterable
from typing import Any, Protocol

import structlog

from reddit_feed.errors import (
    ErrorCategory,
    RedditFeedError,
    UnauthenticatedError,
)
from reddit_feed.feed.parsing import dedupe_source_names, normalize_source_name
from reddit_feed.feed.policy import PriorityPredicate, flagged_first
from reddit_feed.ingestion.fetcher import FetchOutcome, SortVariant, SourceFetcher
from reddit_feed.ingestion.resolver import MediaResolver
from reddit_feed.ingestion.schemas import FeedResult, ResolvedPost, SourceResult
from reddit_feed.notifications import Notifier
from reddit_feed.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

NO_SOURCES_ERROR = "No subreddits specified."
ALL_FAILED_ERROR = "Failed to load any subreddits. Please try again."
NOT_CONNECTED_ERROR = "Please connect your Reddit account to load posts."


class TokenProvider(Protocol):
    async def get_access_token(self) -> str | None: ...


class FeedAssembler:
    """
    Assemble a feed of resolved posts from named sources.

    Usage:
        assembler = FeedAssembler(token_manager, fetcher)
        feed = await assembler.assemble(["pics", "aww"])
        if feed.overall_error:
            ...
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        fetcher: SourceFetcher,
        resolver: MediaResolver | None = None,
        priority: PriorityPredicate = flagged_first,
        rng: random.Random | None = None,
        notifier: Notifier | None = None,
        sort_variants: tuple[SortVariant, ...] | None = None,
    ):
        """
        Initialize the assembler.

        Args:
            token_provider: Source of access tokens (the lifecycle manager)
            fetcher: Source fetcher (its governor gates every request)
            resolver: Media resolver; default rule table when omitted
            priority: Predicate selecting the priority class
            rng: Random source for shuffling (seed it for reproducible order)
            notifier: Sink for rate-limit notifications
            sort_variants: Override the fetcher's default variants
        """
        self._tokens = token_provider
        self._fetcher = fetcher
        self._resolver = resolver or MediaResolver()
        self._priority = priority
        self._rng = rng or random.Random()
        self._notifier = notifier or Notifier()
        self._sort_variants = sort_variants
        self._metrics = get_metrics()

    @property
    def governor(self):
        return self._fetcher.governor

    async def assemble(
        self,
        source_names: Iterable[str],
        priority: PriorityPredicate | None = None,
    ) -> FeedResult:
        """
        Fetch, resolve, deduplicate and order posts for every source.

        Args:
            source_names: Source names (prefixes like "r/" are stripped)
            priority: Per-call override of the priority predicate

        Returns:
            FeedResult with one SourceResult per distinct source
        """
        names = dedupe_source_names([normalize_source_name(n) for n in source_names])
        if not names:
            return FeedResult(results=[], overall_error=NO_SOURCES_ERROR)

        token = await self._tokens.get_access_token()
        if token is None:
            logger.warning("No access token for feed cycle", sources=names)
            error = UnauthenticatedError(NOT_CONNECTED_ERROR)
            return FeedResult(
                results=[self._error_result(name, error) for name in names],
                overall_error=NOT_CONNECTED_ERROR,
            )

        outcomes = await asyncio.gather(
            *(self._collect_source(name, token) for name in names),
            return_exceptions=True,
        )

        predicate = priority or self._priority
        seen_ids: set[str] = set()
        results: list[SourceResult] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, RedditFeedError):
                results.append(self._error_result(name, outcome))
                continue
            if isinstance(outcome, Exception):
                logger.error("Unexpected source failure", source=name, error=str(outcome))
                results.append(
                    SourceResult(
                        source_name=name,
                        error=f"Failed to load r/{name}.",
                        error_category=ErrorCategory.TRANSIENT_NETWORK.value,
                    )
                )
                continue
            if isinstance(outcome, BaseException):
                raise outcome

            posts, error = outcome
            unique = []
            for post in posts:
                if post.id in seen_ids:
                    continue
                seen_ids.add(post.id)
                unique.append(post)
            self._metrics.record_dropped("duplicate", len(posts) - len(unique))

            result = SourceResult(source_name=name, posts=self.order(unique, predicate))
            if error is not None:
                result = result.model_copy(
                    update={"error": error.message, "error_category": error.category.value}
                )
            results.append(result)

        feed = FeedResult(results=results)
        if all(r.failed for r in results):
            feed.overall_error = ALL_FAILED_ERROR

        await self._notify_rate_limit(results)
        logger.info(
            "Feed assembled",
            sources=len(results),
            posts=sum(len(r.posts) for r in results),
            errors=sum(1 for r in results if r.error),
            failed=feed.overall_error is not None,
        )
        return feed

    async def _collect_source(
        self,
        name: str,
        token: str,
    ) -> tuple[list[ResolvedPost], RedditFeedError | None]:
        """Fetch and resolve one source; raises when every variant failed."""
        outcome: FetchOutcome = await self._fetcher.fetch_source_detailed(
            name, self._sort_variants, access_token=token
        )
        if outcome.variants_ok == 0:
            error = outcome.primary_error()
            if error is not None:
                raise error

        posts = self.resolve_records(name, outcome.posts)
        return posts, outcome.primary_error()

    def resolve_records(self, name: str, records: list[dict[str, Any]]) -> list[ResolvedPost]:
        """Resolve raw records, dropping nulls and duplicate ids (first wins)."""
        posts: list[ResolvedPost] = []
        seen: set[str] = set()
        duplicates = 0
        for raw in records:
            post = self._resolver.resolve(raw, source_name=name)
            self._metrics.record_resolution(post.media_rule if post else None)
            if post is None:
                continue
            if post.id in seen:
                duplicates += 1
                continue
            seen.add(post.id)
            posts.append(post)
        self._metrics.record_dropped("duplicate", duplicates)
        return posts

    def order(
        self,
        posts: list[ResolvedPost],
        predicate: PriorityPredicate | None = None,
    ) -> list[ResolvedPost]:
        """Priority class first; each class shuffled on its own."""
        predicate = predicate or self._priority
        priority_class = [p for p in posts if predicate(p)]
        default_class = [p for p in posts if not predicate(p)]
        self._rng.shuffle(priority_class)
        self._rng.shuffle(default_class)
        return priority_class + default_class

    @staticmethod
    def _error_result(name: str, error: RedditFeedError) -> SourceResult:
        return SourceResult(
            source_name=name,
            error=error.message,
            error_category=error.category.value,
        )

    async def _notify_rate_limit(self, results: list[SourceResult]) -> None:
        if not any(r.error_category == ErrorCategory.RATE_LIMITED.value for r in results):
            return
        wait = self.governor.remaining()
        if wait > 0:
            await self._notifier.warning(
                f"Reddit rate limit reached. Pausing requests for {int(wait) + 1}s."
            )
        else:
            await self._notifier.warning("Reddit rate limit reached. Some sources were skipped.")

