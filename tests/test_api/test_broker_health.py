"""Tests for the broker health endpoint."""

from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from reddit_feed.api.app import create_app
from reddit_feed.api.dependencies import get_database


def _mock_db(healthy: bool = True):
    db = AsyncMock()
    db.health_check = AsyncMock(return_value=healthy)
    return db


def _make_client(db=None) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_database] = lambda: db
    return TestClient(app)


class TestHealth:
    """Tests for GET /health."""

    def test_healthy_without_database(self, broker_env):
        """Should be healthy with persistence disabled."""
        response = _make_client().get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["reddit_configured"] is True
        assert body["components"]["database"]["status"] == "disabled"

    def test_unconfigured(self, broker_env, monkeypatch):
        """Should be unhealthy without client credentials."""
        monkeypatch.delenv("REDDIT_CLIENT_SECRET")

        body = _make_client().get("/health").json()

        assert body["status"] == "unhealthy"
        assert body["reddit_configured"] is False

    def test_database_unreachable(self, broker_env, monkeypatch):
        """Should be degraded when the configured database is down."""
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost:1/none")

        body = _make_client(db=None).get("/health").json()

        assert body["status"] == "degraded"
        assert body["components"]["database"]["status"] == "unhealthy"

    def test_database_healthy(self, broker_env, monkeypatch):
        """Should report database latency when connected."""
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/reddit")

        body = _make_client(db=_mock_db()).get("/health").json()

        assert body["status"] == "healthy"
        assert body["components"]["database"]["status"] == "healthy"
        assert body["components"]["database"]["latency_ms"] is not None
