"""Priority-class predicates for feed ordering."""

from collections.abc import Callable, Iterable

from reddit_feed.ingestion.schemas import ResolvedPost

PriorityPredicate = Callable[[ResolvedPost], bool]

DEFAULT_TITLE_KEYWORDS = ("nsfw", "[over 18]", "over18", "over 18", "18+")


def flagged_first(post: ResolvedPost) -> bool:
    """Posts the resolver flagged (upstream adult-content marker)."""
    return post.priority_flag


def no_priority(post: ResolvedPost) -> bool:
    return False


def title_keywords(
    keywords: Iterable[str] = DEFAULT_TITLE_KEYWORDS,
    include_flagged: bool = True,
) -> PriorityPredicate:
    """
    Predicate matching case-insensitive keywords in the title.

    Args:
        keywords: Substrings to look for
        include_flagged: Also treat priority_flag posts as priority
    """
    needles = tuple(k.lower() for k in keywords if k)

    def predicate(post: ResolvedPost) -> bool:
        if include_flagged and post.priority_flag:
            return True
        title = post.title.lower()
        return any(needle in title for needle in needles)

    return predicate


POLICIES: dict[str, PriorityPredicate] = {
    "flagged": flagged_first,
    "none": no_priority,
    "keywords": title_keywords(),
}


def get_policy(name: str) -> PriorityPredicate:
    """Look up a named policy (flagged, none, keywords)."""
    try:
        return POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown priority policy: {name}") from None
