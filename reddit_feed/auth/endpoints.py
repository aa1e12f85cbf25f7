"""
Clients for the authorization-exchange and refresh endpoints.

Two implementations of the same TokenEndpoint contract:
- BrokerTokenClient: talks to the token broker (our FastAPI service or
  any compatible deployment) with a service-level bearer credential.
  The client secret never leaves the broker.
- RedditTokenClient: talks to Reddit's token URL directly with HTTP
  Basic client credentials. Used by the broker itself and by trusted
  server-side callers.

Non-2xx responses raise TokenEndpointError; transport failures surface
as TransientNetworkError from HTTPClient.
"""

import logging
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from reddit_feed.auth.schemas import TokenResponse
from reddit_feed.config.settings import Settings, get_settings
from reddit_feed.errors import ConfigurationError, TokenEndpointError
from reddit_feed.ingestion.http_client import HTTPClient

logger = logging.getLogger(__name__)

BROKER_CALLBACK_PATH = "/reddit-auth/callback"
BROKER_REFRESH_PATH = "/reddit-auth/refresh"


@runtime_checkable
class TokenEndpoint(Protocol):
    """Authorization-code exchange and refresh."""

    async def exchange_code(self, code: str) -> TokenResponse: ...

    async def refresh(self, refresh_token: str) -> TokenResponse: ...


def parse_token_response(response: httpx.Response, operation: str) -> TokenResponse:
    """
    Validate an endpoint response.

    Reddit can answer 200 with ``{"error": "invalid_grant"}``; that is
    treated as a 400 so the caller revokes the refresh token.
    """
    if not response.is_success:
        logger.warning(f"{operation} failed with status {response.status_code}")
        raise TokenEndpointError(
            f"{operation} failed with status {response.status_code}",
            status_code=response.status_code,
            body=response.text,
        )

    try:
        data: Any = response.json()
    except ValueError as e:
        raise TokenEndpointError(
            f"{operation} returned a non-JSON body", status_code=502, body=response.text
        ) from e

    if isinstance(data, dict) and data.get("error") and not data.get("access_token"):
        raise TokenEndpointError(
            f"{operation} rejected: {data.get('error')}", status_code=400, body=response.text
        )

    try:
        return TokenResponse.model_validate(data)
    except ValidationError as e:
        raise TokenEndpointError(
            f"{operation} returned an invalid token payload", status_code=502, body=response.text
        ) from e


class BrokerTokenClient:
    """Token endpoint client for the broker service."""

    def __init__(
        self,
        broker_url: str | None = None,
        service_key: str | None = None,
        http_client: HTTPClient | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        base = broker_url or settings.token_broker_url
        if not base:
            raise ConfigurationError("TOKEN_BROKER_URL is not configured")
        self.broker_url = base.rstrip("/")
        self._service_key = service_key or settings.token_broker_key
        self._http = http_client or HTTPClient(
            timeout=settings.http_timeout_seconds,
            user_agent=settings.reddit_user_agent,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._service_key:
            headers["Authorization"] = f"Bearer {self._service_key}"
        return headers

    async def _post(self, path: str, body: dict[str, str], operation: str) -> TokenResponse:
        async with self._http as http:
            response = await http.post(
                f"{self.broker_url}{path}",
                json=body,
                headers=self._headers(),
            )
        return parse_token_response(response, operation)

    async def exchange_code(self, code: str) -> TokenResponse:
        return await self._post(BROKER_CALLBACK_PATH, {"code": code}, "Code exchange")

    async def refresh(self, refresh_token: str) -> TokenResponse:
        return await self._post(BROKER_REFRESH_PATH, {"refreshToken": refresh_token}, "Token refresh")


class RedditTokenClient:
    """Token endpoint client calling Reddit with client credentials."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        http_client: HTTPClient | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self._client_id = client_id or settings.reddit_client_id
        self._client_secret = client_secret or settings.reddit_client_secret
        self.redirect_uri = redirect_uri or settings.reddit_redirect_uri
        self.token_url = settings.reddit_token_url
        self._user_agent = settings.reddit_user_agent
        self._http = http_client or HTTPClient(
            timeout=settings.http_timeout_seconds,
            user_agent=settings.reddit_user_agent,
        )

        if not self._client_id or not self._client_secret:
            raise ConfigurationError("Reddit client id and secret are required")

    async def _post(self, data: dict[str, str], operation: str) -> TokenResponse:
        async with self._http as http:
            response = await http.post(
                self.token_url,
                auth=(self._client_id, self._client_secret),
                data=data,
                headers={"User-Agent": self._user_agent},
            )
        return parse_token_response(response, operation)

    async def exchange_code(self, code: str) -> TokenResponse:
        if not self.redirect_uri:
            raise ConfigurationError("REDDIT_REDIRECT_URI is required for code exchange")
        return await self._post(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            "Code exchange",
        )

    async def refresh(self, refresh_token: str) -> TokenResponse:
        return await self._post(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "Token refresh",
        )
