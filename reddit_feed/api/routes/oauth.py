"""
Token broker endpoints.

Keeps the Reddit client secret server-side: the browser (or any other
caller) exchanges codes and refresh tokens through these routes.
"""

from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, RedirectResponse

from reddit_feed.api.auth import verify_service_key
from reddit_feed.api.dependencies import get_token_client
from reddit_feed.api.models import BrokerError, CodeExchangeRequest, RefreshRequest, TokenPayload
from reddit_feed.auth.endpoints import RedditTokenClient
from reddit_feed.config.settings import get_settings
from reddit_feed.errors import RedditFeedError, TokenEndpointError

router = APIRouter(prefix="/reddit-auth")
logger = structlog.get_logger(__name__)


def redirect_error_code(status_code: int | None) -> str:
    """reddit_auth_error value for a failed code exchange."""
    if status_code == 401:
        return "unauthorized"
    if status_code == 403:
        return "forbidden"
    if status_code == 429:
        return "rate_limited"
    if status_code is not None and status_code >= 500:
        return "server_error"
    return "failed"


def refresh_error_status(status_code: int | None) -> tuple[int, str]:
    """Broker (status, error_code) for a failed refresh."""
    if status_code == 401:
        return status.HTTP_401_UNAUTHORIZED, "unauthorized"
    if status_code == 403:
        return status.HTTP_403_FORBIDDEN, "forbidden"
    if status_code == 429:
        return status.HTTP_429_TOO_MANY_REQUESTS, "rate_limited"
    if status_code is None or status_code >= 500:
        return status.HTTP_502_BAD_GATEWAY, "reddit_server_error"
    return status.HTTP_400_BAD_REQUEST, "unknown_error"


def _frontend_redirect(params: dict[str, str | int]) -> RedirectResponse:
    base = get_settings().frontend_url.rstrip("/")
    return RedirectResponse(f"{base}/?{urlencode(params)}", status_code=status.HTTP_302_FOUND)


def _error(status_code: int, error: str, **fields) -> JSONResponse:
    body = BrokerError(error=error, **fields)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@router.get(
    "/callback",
    summary="OAuth redirect target",
    description="Exchange the authorization code and redirect back to the frontend.",
    response_model=None,
)
async def oauth_callback(
    code: str | None = Query(default=None),
    state: str = Query(default=""),
    error: str | None = Query(default=None),
    client: RedditTokenClient = Depends(get_token_client),
):
    if error:
        logger.warning("Reddit authorization denied", error=error)
        return _frontend_redirect({"reddit_auth_error": "forbidden", "state": state})
    if not code:
        return _error(status.HTTP_400_BAD_REQUEST, "No authorization code provided")

    try:
        tokens = await client.exchange_code(code)
    except RedditFeedError as e:
        logger.warning("Code exchange failed", status=e.status_code, error=e.message)
        params: dict[str, str | int] = {"reddit_auth_error": redirect_error_code(e.status_code)}
        if params["reddit_auth_error"] == "failed" and e.status_code is not None:
            params["code"] = e.status_code
        params["state"] = state
        return _frontend_redirect(params)

    logger.info("Code exchanged via redirect")
    return _frontend_redirect({"reddit_tokens": tokens.encode(), "state": state})


@router.post(
    "/callback",
    summary="Exchange an authorization code",
    response_model=TokenPayload,
    responses={400: {"model": BrokerError}},
)
async def exchange_code(
    request: CodeExchangeRequest,
    client: RedditTokenClient = Depends(get_token_client),
):
    if not request.code:
        return _error(status.HTTP_400_BAD_REQUEST, "No code provided")

    try:
        tokens = await client.exchange_code(request.code)
    except TokenEndpointError as e:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "Failed to exchange code for tokens",
            details=e.body,
            status=e.status_code,
        )
    except RedditFeedError as e:
        return _error(status.HTTP_502_BAD_GATEWAY, "Token exchange error", details=e.message)

    return TokenPayload(**tokens.model_dump())


@router.post(
    "/refresh",
    summary="Refresh an access token",
    response_model=TokenPayload,
    responses={
        400: {"model": BrokerError},
        401: {"model": BrokerError},
        429: {"model": BrokerError},
        502: {"model": BrokerError},
    },
)
async def refresh_token(
    request: RefreshRequest,
    _service_key: str = Depends(verify_service_key),
    client: RedditTokenClient = Depends(get_token_client),
):
    if not request.refresh_token:
        return _error(status.HTTP_400_BAD_REQUEST, "Refresh token is required")

    try:
        tokens = await client.refresh(request.refresh_token)
    except TokenEndpointError as e:
        http_status, error_code = refresh_error_status(e.status_code)
        logger.warning("Refresh rejected by Reddit", status=e.status_code, error_code=error_code)
        return _error(
            http_status,
            "Failed to refresh token",
            error_code=error_code,
            details=e.body,
            status=e.status_code,
        )
    except RedditFeedError as e:
        http_status, error_code = refresh_error_status(None)
        return _error(http_status, "Token refresh error", error_code=error_code, details=e.message)

    return TokenPayload(**tokens.model_dump())
