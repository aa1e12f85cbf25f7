"""Tests for priority-class policies."""

import pytest

from reddit_feed.feed.policy import flagged_first, get_policy, no_priority, title_keywords
from reddit_feed.ingestion.schemas import ResolvedPost


def _post(title: str = "A photo", flagged: bool = False) -> ResolvedPost:
    return ResolvedPost(
        id="p1",
        title=title,
        source_name="pics",
        permalink="https://reddit.com/r/pics/comments/p1/",
        is_image=True,
        display_url="https://i.redd.it/p1.jpg",
        thumbnail_url="https://i.redd.it/p1.jpg",
        priority_flag=flagged,
    )


class TestPolicies:
    """Tests for the built-in predicates."""

    def test_flagged_first(self):
        """Should select posts carrying the priority flag."""
        assert flagged_first(_post(flagged=True))
        assert not flagged_first(_post())

    def test_no_priority(self):
        """Should never select anything."""
        assert not no_priority(_post(flagged=True))

    def test_title_keywords(self):
        """Should match keywords case-insensitively."""
        predicate = title_keywords(["nsfw"])

        assert predicate(_post("Beach day [NSFW]"))
        assert not predicate(_post("Beach day"))

    def test_title_keywords_include_flagged(self):
        """Should also select flagged posts unless told otherwise."""
        assert title_keywords(["x"])(_post(flagged=True))
        assert not title_keywords(["x"], include_flagged=False)(_post(flagged=True))

    def test_get_policy(self):
        """Should look up policies by name."""
        assert get_policy("flagged") is flagged_first
        assert get_policy("none") is no_priority
        assert get_policy("keywords")(_post("18+ only"))

    def test_unknown_policy(self):
        """Should reject unknown names."""
        with pytest.raises(ValueError, match="Unknown priority policy"):
            get_policy("loudest")
