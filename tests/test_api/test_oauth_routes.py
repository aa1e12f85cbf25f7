"""Tests for the token broker routes."""

from urllib.parse import parse_qs, urlsplit

import pytest

from reddit_feed.api.routes.oauth import redirect_error_code, refresh_error_status
from reddit_feed.auth.schemas import TokenResponse
from reddit_feed.errors import TokenEndpointError, TransientNetworkError


def _redirect_params(response) -> dict[str, list[str]]:
    location = response.headers["location"]
    assert location.startswith("http://localhost:5173/?")
    return parse_qs(urlsplit(location).query)


class TestErrorMapping:
    """Tests for status mapping helpers."""

    @pytest.mark.parametrize(
        "status,expected",
        [(401, "unauthorized"), (403, "forbidden"), (429, "rate_limited"), (503, "server_error"), (400, "failed"), (None, "failed")],
    )
    def test_redirect_error_code(self, status, expected):
        """Should map exchange failures to redirect error codes."""
        assert redirect_error_code(status) == expected

    @pytest.mark.parametrize(
        "status,expected",
        [
            (401, (401, "unauthorized")),
            (403, (403, "forbidden")),
            (429, (429, "rate_limited")),
            (500, (502, "reddit_server_error")),
            (None, (502, "reddit_server_error")),
            (400, (400, "unknown_error")),
        ],
    )
    def test_refresh_error_status(self, status, expected):
        """Should map refresh failures to broker responses."""
        assert refresh_error_status(status) == expected


class TestRefreshRoute:
    """Tests for POST /reddit-auth/refresh."""

    def test_refresh(self, client, mock_token_client, auth_headers):
        """Should return the refreshed tokens."""
        response = client.post("/reddit-auth/refresh", json={"refreshToken": "r1"}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["access_token"] == "a1"
        assert body["expires_in"] == 3600
        mock_token_client.refresh.assert_awaited_once_with("r1")

    def test_requires_service_key(self, client):
        """Should reject callers without the service credential."""
        response = client.post("/reddit-auth/refresh", json={"refreshToken": "r1"})
        assert response.status_code == 401

    def test_rejects_wrong_key(self, client):
        """Should reject unknown service keys."""
        response = client.post(
            "/reddit-auth/refresh",
            json={"refreshToken": "r1"},
            headers={"Authorization": "Bearer someone-else"},
        )
        assert response.status_code == 401

    def test_dev_mode(self, client, monkeypatch):
        """Should allow all callers when no keys are configured."""
        from reddit_feed.config.settings import get_settings

        monkeypatch.setenv("BROKER_SERVICE_KEYS", "")
        get_settings.cache_clear()

        response = client.post("/reddit-auth/refresh", json={"refreshToken": "r1"})
        assert response.status_code == 200

    def test_missing_token(self, client, auth_headers):
        """Should require a refresh token."""
        response = client.post("/reddit-auth/refresh", json={}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Refresh token is required"

    @pytest.mark.parametrize(
        "upstream,status,error_code",
        [
            (400, 400, "unknown_error"),
            (401, 401, "unauthorized"),
            (429, 429, "rate_limited"),
            (500, 502, "reddit_server_error"),
        ],
    )
    def test_upstream_rejection(self, client, mock_token_client, auth_headers, upstream, status, error_code):
        """Should pass Reddit's verdict through with a mapped status."""
        mock_token_client.refresh.side_effect = TokenEndpointError(
            "Token refresh failed", status_code=upstream, body='{"error": "invalid_grant"}'
        )

        response = client.post("/reddit-auth/refresh", json={"refreshToken": "r1"}, headers=auth_headers)

        assert response.status_code == status
        body = response.json()
        assert body["error"] == "Failed to refresh token"
        assert body["error_code"] == error_code
        assert body["status"] == upstream

    def test_network_error(self, client, mock_token_client, auth_headers):
        """Should answer 502 when Reddit is unreachable."""
        mock_token_client.refresh.side_effect = TransientNetworkError("Network error")

        response = client.post("/reddit-auth/refresh", json={"refreshToken": "r1"}, headers=auth_headers)

        assert response.status_code == 502
        assert response.json()["error"] == "Token refresh error"


class TestCodeExchangeRoute:
    """Tests for POST /reddit-auth/callback."""

    def test_exchange(self, client, mock_token_client):
        """Should exchange the code."""
        response = client.post("/reddit-auth/callback", json={"code": "c1"})

        assert response.status_code == 200
        assert response.json()["refresh_token"] == "r1"
        mock_token_client.exchange_code.assert_awaited_once_with("c1")

    def test_missing_code(self, client):
        """Should require a code."""
        response = client.post("/reddit-auth/callback", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "No code provided"

    def test_rejected_code(self, client, mock_token_client):
        """Should report Reddit's rejection."""
        mock_token_client.exchange_code.side_effect = TokenEndpointError("bad", status_code=400, body="invalid_grant")

        response = client.post("/reddit-auth/callback", json={"code": "c1"})

        assert response.status_code == 400
        assert response.json()["error"] == "Failed to exchange code for tokens"
        assert response.json()["details"] == "invalid_grant"


class TestRedirectCallback:
    """Tests for GET /reddit-auth/callback."""

    def test_success_redirect(self, client, token_response):
        """Should redirect to the frontend with the encoded tokens."""
        response = client.get("/reddit-auth/callback?code=c1&state=s1", follow_redirects=False)

        assert response.status_code == 302
        params = _redirect_params(response)
        assert params["state"] == ["s1"]
        assert TokenResponse.decode(params["reddit_tokens"][0]) == token_response

    def test_denied(self, client, mock_token_client):
        """Should redirect with forbidden when the user denies access."""
        response = client.get("/reddit-auth/callback?error=access_denied&state=s1", follow_redirects=False)

        assert _redirect_params(response)["reddit_auth_error"] == ["forbidden"]
        mock_token_client.exchange_code.assert_not_awaited()

    def test_missing_code(self, client):
        """Should answer 400 without a code."""
        response = client.get("/reddit-auth/callback", follow_redirects=False)

        assert response.status_code == 400
        assert response.json()["error"] == "No authorization code provided"

    def test_rate_limited_exchange(self, client, mock_token_client):
        """Should redirect with rate_limited."""
        mock_token_client.exchange_code.side_effect = TokenEndpointError("slow", status_code=429)

        response = client.get("/reddit-auth/callback?code=c1&state=s1", follow_redirects=False)

        params = _redirect_params(response)
        assert params["reddit_auth_error"] == ["rate_limited"]
        assert params["state"] == ["s1"]

    def test_failed_exchange_carries_status(self, client, mock_token_client):
        """Should include the status for generic failures."""
        mock_token_client.exchange_code.side_effect = TokenEndpointError("bad", status_code=400)

        response = client.get("/reddit-auth/callback?code=c1", follow_redirects=False)

        params = _redirect_params(response)
        assert params["reddit_auth_error"] == ["failed"]
        assert params["code"] == ["400"]


class TestConfiguration:
    """Tests for a misconfigured broker."""

    def test_missing_client_credentials(self, broker_env, monkeypatch, auth_headers):
        """Should answer 500 when client credentials are missing."""
        from fastapi.testclient import TestClient

        from reddit_feed.api.app import create_app

        monkeypatch.delenv("REDDIT_CLIENT_ID")
        monkeypatch.delenv("REDDIT_CLIENT_SECRET")

        response = TestClient(create_app()).post(
            "/reddit-auth/refresh", json={"refreshToken": "r1"}, headers=auth_headers
        )

        assert response.status_code == 500
        assert response.json()["detail"].startswith("Server configuration error")

    def test_request_id_header(self, client):
        """Should echo a request id on every response."""
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-123"
