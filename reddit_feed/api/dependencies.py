"""
Dependency injection for broker endpoints.
"""

import structlog
from fastapi import HTTPException, status

from reddit_feed.auth.endpoints import RedditTokenClient
from reddit_feed.config.settings import get_settings
from reddit_feed.errors import ConfigurationError
from reddit_feed.storage.database import Database

logger = structlog.get_logger(__name__)

# Global instances (initialized on first request)
_token_client: RedditTokenClient | None = None
_database: Database | None = None


async def get_token_client() -> RedditTokenClient:
    """
    Get the Reddit token client.

    Raises:
        HTTPException: 500 when client credentials are not configured
    """
    global _token_client

    if _token_client is None:
        try:
            _token_client = RedditTokenClient()
        except ConfigurationError as e:
            logger.error("Broker misconfigured", error=e.message)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server configuration error: Missing required environment variables.",
            ) from e

    return _token_client


async def get_database() -> Database | None:
    """Get the database, or None when persistence is not configured or unreachable."""
    global _database

    if not get_settings().store_configured:
        return None

    if _database is None:
        database = Database()
        try:
            await database.connect()
        except Exception as e:
            logger.error("Credential database unavailable", error=str(e))
            return None
        _database = database

    return _database


async def cleanup_dependencies() -> None:
    """Release shared resources on shutdown."""
    global _token_client, _database

    if _database is not None:
        await _database.close()
        _database = None
    _token_client = None
