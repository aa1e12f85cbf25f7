"""Feed layer - assembly, ordering policies, source parsing and polling."""

from reddit_feed.feed.assembler import FeedAssembler, TokenProvider
from reddit_feed.feed.parsing import normalize_source_name, parse_source_names
from reddit_feed.feed.policy import flagged_first, get_policy, no_priority, title_keywords
from reddit_feed.feed.poller import FeedPoller

__all__ = [
    "FeedAssembler",
    "FeedPoller",
    "TokenProvider",
    "flagged_first",
    "get_policy",
    "no_priority",
    "normalize_source_name",
    "parse_source_names",
    "title_keywords",
]
