"""Configuration for the reddit-feed pipeline."""

from reddit_feed.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
