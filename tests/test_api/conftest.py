"""Shared fixtures for broker API tests."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from reddit_feed.api import dependencies
from reddit_feed.api.app import create_app
from reddit_feed.api.dependencies import get_database, get_token_client
from reddit_feed.auth.schemas import TokenResponse

SERVICE_KEY = "svc-key"


@pytest.fixture
def broker_env(monkeypatch):
    """Environment of a configured broker without a database."""
    monkeypatch.setenv("REDDIT_CLIENT_ID", "test-client")
    monkeypatch.setenv("REDDIT_CLIENT_SECRET", "test-secret")
    monkeypatch.setenv("REDDIT_REDIRECT_URI", "http://localhost:8001/reddit-auth/callback")
    monkeypatch.setenv("FRONTEND_URL", "http://localhost:5173")
    monkeypatch.setenv("BROKER_SERVICE_KEYS", SERVICE_KEY)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(dependencies, "_token_client", None)
    monkeypatch.setattr(dependencies, "_database", None)


@pytest.fixture
def token_response():
    return TokenResponse(
        access_token="a1",
        refresh_token="r1",
        expires_in=3600,
        scope="read identity",
        token_type="bearer",
    )


@pytest.fixture
def mock_token_client(token_response):
    """Mock RedditTokenClient."""
    client = AsyncMock()
    client.exchange_code = AsyncMock(return_value=token_response)
    client.refresh = AsyncMock(return_value=token_response)
    return client


@pytest.fixture
def client(broker_env, mock_token_client):
    """Test client with the token client replaced."""
    app = create_app()
    app.dependency_overrides[get_token_client] = lambda: mock_token_client
    app.dependency_overrides[get_database] = lambda: None
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {SERVICE_KEY}"}
