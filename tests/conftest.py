"""Pytest fixtures for reddit-feed tests."""

import random
from typing import Any

import pytest

from reddit_feed.config.settings import Settings


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink:
    """Notification sink that keeps everything it receives."""

    def __init__(self):
        self.notifications = []

    def __call__(self, notification) -> None:
        self.notifications.append(notification)

    @property
    def messages(self) -> list[str]:
        return [n.message for n in self.notifications]

    def levels(self) -> list[str]:
        return [n.level.value for n in self.notifications]


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        reddit_client_id="test-client",
        reddit_client_secret="test-secret",
        reddit_redirect_uri="http://localhost:5173/auth/callback",
        reddit_user_agent="reddit-feed-tests/0.1",
        token_broker_url="https://broker.test/functions/v1",
        token_broker_key="anon-key",
        frontend_url="http://localhost:5173",
        database_url=None,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


def make_raw_post(post_id: str = "abc123", **overrides: Any) -> dict[str, Any]:
    """A minimal self-post record; override fields to shape it."""
    post = {
        "id": post_id,
        "title": f"Post {post_id}",
        "author": "someone",
        "subreddit": "pics",
        "created_utc": 1_700_000_000,
        "permalink": f"/r/pics/comments/{post_id}/post/",
        "url": f"https://www.reddit.com/r/pics/comments/{post_id}/post/",
        "thumbnail": "self",
        "over_18": False,
        "is_video": False,
    }
    post.update(overrides)
    return post


def make_image_post(post_id: str = "img1", **overrides: Any) -> dict[str, Any]:
    """A direct i.redd.it image post."""
    fields = {
        "post_hint": "image",
        "url": f"https://i.redd.it/{post_id}.jpg",
        "thumbnail": f"https://b.thumbs.redditmedia.com/{post_id}.jpg",
    }
    fields.update(overrides)
    return make_raw_post(post_id, **fields)


def listing(*posts: dict[str, Any]) -> dict[str, Any]:
    """Wrap post records in a Listing payload."""
    return {
        "kind": "Listing",
        "data": {
            "after": None,
            "children": [{"kind": "t3", "data": post} for post in posts],
        },
    }


@pytest.fixture
def raw_post():
    """Factory for raw post records."""
    return make_raw_post


@pytest.fixture
def image_post():
    """Factory for direct image post records."""
    return make_image_post


@pytest.fixture
def make_listing():
    """Factory wrapping post records in a Listing payload."""
    return listing


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached process-wide; start each test from the environment."""
    from reddit_feed.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
