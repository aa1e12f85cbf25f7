"""Tests for the PostgreSQL connection manager."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from reddit_feed.errors import ConfigurationError
from reddit_feed.storage.database import Database


def _make_pool(fetchval_result=1):
    conn = AsyncMock()
    conn.fetchval = AsyncMock(return_value=fetchval_result)
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=acquire)
    pool.close = AsyncMock()
    return pool, conn


class TestDatabase:
    """Tests for Database."""

    @pytest.mark.asyncio
    async def test_connect_requires_url(self, monkeypatch):
        """Should refuse to connect without a URL."""
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(ConfigurationError):
            await Database().connect()

    @pytest.mark.asyncio
    async def test_context_manager(self):
        """Should open and close the pool."""
        pool, _ = _make_pool()
        with patch("reddit_feed.storage.database.asyncpg.create_pool", AsyncMock(return_value=pool)) as create:
            async with Database("postgresql://localhost/reddit", min_size=1, max_size=2) as db:
                assert db.is_connected

        create.assert_awaited_once()
        assert create.call_args.kwargs["max_size"] == 2
        pool.close.assert_awaited_once()
        assert not db.is_connected

    def test_pool_before_connect(self):
        """Should raise when used before connect()."""
        with pytest.raises(RuntimeError):
            Database("postgresql://localhost/reddit").pool

    @pytest.mark.asyncio
    async def test_health_check(self):
        """Should report a working pool."""
        pool, conn = _make_pool()
        db = Database("postgresql://localhost/reddit")
        db._pool = pool

        assert await db.health_check() is True
        conn.fetchval.assert_awaited_once_with("SELECT 1")

    @pytest.mark.asyncio
    async def test_health_check_failure(self):
        """Should report False when the query fails."""
        pool, conn = _make_pool()
        conn.fetchval.side_effect = OSError("connection reset")
        db = Database("postgresql://localhost/reddit")
        db._pool = pool

        assert await db.health_check() is False
