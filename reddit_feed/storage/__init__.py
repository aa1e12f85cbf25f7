"""Storage layer - PostgreSQL connection pool."""

from reddit_feed.storage.database import Database

__all__ = ["Database"]
