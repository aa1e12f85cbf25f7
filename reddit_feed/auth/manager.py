"""
Token lifecycle manager.

Owns the single AccessCredential for one identified user and keeps it
usable across expiry, revocation and flaky refresh endpoints.

Guarantees:
- get_access_token() never raises; failures surface as None plus a
  notification.
- One refresh request per refresh token at a time. The attempt record
  (and its in-flight task) is written before the first await, so any
  caller arriving while a refresh is running joins it instead of
  starting another.
- A failed refresh of a token is not retried for refresh_failure_cooldown
  seconds (memoized failure).
- initialize() always settles within init_timeout seconds.
"""

import asyncio
import secrets
import time
from collections.abc import Callable, Mapping
from urllib.parse import urlencode

import structlog

from reddit_feed.auth.endpoints import BrokerTokenClient, RedditTokenClient, TokenEndpoint
from reddit_feed.auth.schemas import (
    AccessCredential,
    LifecycleState,
    RefreshAttemptRecord,
    TokenResponse,
)
from reddit_feed.auth.store import CredentialStore, InMemoryCredentialStore
from reddit_feed.config.settings import Settings, get_settings
from reddit_feed.errors import (
    ConfigurationError,
    RedditFeedError,
    TokenEndpointError,
    UnauthenticatedError,
)
from reddit_feed.ingestion.http_client import RetryConfig, with_retry
from reddit_feed.notifications import Notifier
from reddit_feed.observability.logging import mask_token
from reddit_feed.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

REDIRECT_TOKENS_PARAM = "reddit_tokens"
REDIRECT_ERROR_PARAM = "reddit_auth_error"

# Messages for reddit_auth_error values a broker redirect can carry
REDIRECT_ERROR_MESSAGES = {
    "unauthorized": "Reddit rejected the authorization. Please try connecting again.",
    "forbidden": "Reddit denied access for this app.",
    "rate_limited": "Reddit is rate limiting sign-ins. Please wait a minute and retry.",
    "server_error": "Reddit is having problems right now. Please try again later.",
    "failed": "Failed to connect your Reddit account.",
}


class TokenLifecycleManager:
    """
    Single source of truth for the current Reddit access credential.

    Usage:
        manager = TokenLifecycleManager(endpoint, store, user_id="u1")
        await manager.initialize()
        token = await manager.get_access_token()  # None when unavailable
    """

    def __init__(
        self,
        endpoint: TokenEndpoint,
        store: CredentialStore | None = None,
        user_id: str | None = None,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
        retry_config: RetryConfig | None = None,
    ):
        """
        Initialize the manager.

        Args:
            endpoint: Authorization-exchange / refresh endpoint client
            store: Credential persistence (in-memory when omitted)
            user_id: Identified user; None means nobody is signed in
            settings: Settings override
            notifier: Sink for user-facing notifications
            clock: Wall clock in epoch seconds (expiry arithmetic)
            retry_config: Retry policy for refresh requests; the whole
                retry loop still runs inside the refresh timeout
        """
        self._settings = settings or get_settings()
        self._endpoint = endpoint
        self._store = store if store is not None else InMemoryCredentialStore()
        self._user_id = user_id
        self._notifier = notifier or Notifier()
        self._clock = clock
        self._retry_config = retry_config or RetryConfig(
            max_attempts=self._settings.refresh_max_attempts,
            max_backoff_seconds=self._settings.max_backoff_seconds,
        )

        self.refresh_timeout = self._settings.refresh_timeout_seconds
        self.init_timeout = self._settings.init_timeout_seconds
        self.expiry_skew = self._settings.token_expiry_skew_seconds
        self.failure_cooldown = self._settings.refresh_failure_cooldown_seconds
        self.reuse_window = self._settings.refresh_reuse_window_seconds

        self._credential = AccessCredential.empty()
        self._attempt = RefreshAttemptRecord()
        self._state = LifecycleState.UNINITIALIZED
        self._init_task: asyncio.Task | None = None
        self._pending_state: str | None = None
        self._metrics = get_metrics()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def credential(self) -> AccessCredential:
        return self._credential

    @property
    def is_authenticated(self) -> bool:
        return self._credential.is_authenticated

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def last_attempt(self) -> RefreshAttemptRecord:
        return self._attempt

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self, user_id: str | None = None) -> AccessCredential:
        """
        Load and refresh the stored credential for the session.

        Idempotent: once READY or FAILED for a user, later calls return
        the current credential. Never raises; failures and timeouts end
        in FAILED with an unauthenticated credential.
        """
        if user_id is not None and user_id != self._user_id:
            self._reset(user_id)

        if self._state in (LifecycleState.READY, LifecycleState.FAILED):
            return self._credential

        if self._init_task is None:
            self._state = LifecycleState.INITIALIZING
            self._init_task = asyncio.ensure_future(self._initialize())

        task = self._init_task
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.init_timeout)
        except asyncio.TimeoutError:
            task.cancel()
            if self._init_task is task:
                logger.warning("Token initialization timed out", user_id=self._user_id, timeout=self.init_timeout)
                self._degrade()
                self._state = LifecycleState.FAILED
        return self._credential

    async def _initialize(self) -> None:
        user_id = self._user_id
        try:
            if not user_id:
                self._state = LifecycleState.READY
                return

            stored = await self._store.load(user_id)
            if stored is None or not stored.refresh_token:
                logger.info("No stored Reddit credential", user_id=user_id)
                self._state = LifecycleState.READY
                return

            self._credential = stored
            token = await self._refresh(stored.refresh_token)
            if user_id != self._user_id:
                return
            self._state = LifecycleState.READY if token else LifecycleState.FAILED
            logger.info("Token initialization complete", user_id=user_id, authenticated=token is not None)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Token initialization failed", user_id=user_id, error=str(e), exc_info=True)
            self._degrade()
            self._state = LifecycleState.FAILED

    # ------------------------------------------------------------------
    # Token access
    # ------------------------------------------------------------------

    async def get_access_token(self) -> str | None:
        """
        Return a currently valid access token, refreshing when needed.

        Returns None when there is no credential, the refresh failed, or
        the same token failed to refresh within the cool-down window.
        """
        if self._state == LifecycleState.INITIALIZING and self._init_task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(self._init_task), timeout=self.init_timeout)
            except asyncio.TimeoutError:
                pass

        credential = self._credential
        if credential.is_valid(now=self._clock(), skew=self.expiry_skew):
            return credential.access_token
        if not credential.refresh_token:
            return None
        return await self._refresh(credential.refresh_token)

    async def refresh(self) -> str | None:
        """Force a refresh of the current refresh token."""
        refresh_token = self._credential.refresh_token
        if not refresh_token:
            return None
        return await self._refresh(refresh_token)

    async def _refresh(self, refresh_token: str) -> str | None:
        now = self._clock()
        attempt = self._attempt

        if attempt.matches(refresh_token):
            if attempt.in_flight is not None and not attempt.in_flight.done():
                return await asyncio.shield(attempt.in_flight)
            if attempt.failed and now - attempt.timestamp < self.failure_cooldown:
                self._metrics.record_token_refresh("memoized")
                logger.debug("Skipping refresh of recently failed token", token=mask_token(refresh_token))
                return None
            if (
                attempt.succeeded
                and now - attempt.timestamp < self.reuse_window
                and self._credential.access_token
            ):
                self._metrics.record_token_refresh("reused")
                return self._credential.access_token

        # Record the attempt before the first suspension point
        record = RefreshAttemptRecord(token=refresh_token, timestamp=now)
        record.in_flight = asyncio.ensure_future(self._run_refresh(record))
        self._attempt = record
        return await asyncio.shield(record.in_flight)

    async def _run_refresh(self, record: RefreshAttemptRecord) -> str | None:
        refresh_token = record.token
        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                with_retry(
                    lambda: self._endpoint.refresh(refresh_token),
                    backoff=self._retry_config,
                    operation="token refresh",
                ),
                timeout=self.refresh_timeout,
            )
        except asyncio.TimeoutError:
            self._metrics.record_token_refresh("timeout", time.monotonic() - started)
            logger.warning("Token refresh timed out", timeout=self.refresh_timeout)
            await self._on_refresh_failure(record, revoke=False, rejected=False)
            return None
        except TokenEndpointError as e:
            self._metrics.record_token_refresh("failed", time.monotonic() - started)
            logger.warning(
                "Token refresh rejected",
                status=e.status_code,
                revoke=e.revokes_credential,
                token=mask_token(refresh_token),
            )
            await self._on_refresh_failure(record, revoke=e.revokes_credential, rejected=True)
            return None
        except RedditFeedError as e:
            self._metrics.record_token_refresh("failed", time.monotonic() - started)
            logger.warning("Token refresh failed", error=e.message, category=e.category.value)
            await self._on_refresh_failure(record, revoke=False, rejected=False)
            return None
        except Exception as e:
            self._metrics.record_token_refresh("failed", time.monotonic() - started)
            logger.error("Unexpected token refresh error", error=str(e), exc_info=True)
            await self._on_refresh_failure(record, revoke=False, rejected=False)
            return None

        self._metrics.record_token_refresh("success", time.monotonic() - started)
        record.succeeded = True
        record.timestamp = self._clock()

        if self._credential.refresh_token != refresh_token:
            # Disconnected or replaced while the request was in flight
            logger.info("Discarding refresh result for replaced credential", token=mask_token(refresh_token))
            return None

        self._credential = response.to_credential(record.timestamp, previous=self._credential)
        logger.info(
            "Token refreshed",
            user_id=self._user_id,
            expires_in=response.expires_in,
            rotated=response.refresh_token is not None,
        )
        await self._persist(self._credential)
        return self._credential.access_token

    async def _on_refresh_failure(
        self,
        record: RefreshAttemptRecord,
        revoke: bool,
        rejected: bool,
    ) -> None:
        record.failed = True
        record.timestamp = self._clock()

        if self._credential.refresh_token != record.token:
            return

        if rejected:
            self._credential = AccessCredential.empty()
        else:
            self._degrade()

        if revoke and self._user_id:
            await self._delete_stored()
            await self._notifier.warning("Your Reddit session has expired. Please reconnect your account.")
        else:
            await self._notifier.warning("Could not refresh Reddit access. Will retry shortly.")

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    def authorization_url(self, state: str | None = None) -> str:
        """
        Build the Reddit authorize URL for the connect flow.

        Raises:
            ConfigurationError: Client id or redirect URI not configured
            UnauthenticatedError: No identified user to attach the account to
        """
        settings = self._settings
        if not settings.reddit_client_id:
            raise ConfigurationError("Reddit client ID is not configured.")
        if not settings.reddit_redirect_uri:
            raise ConfigurationError("Reddit redirect URI is not configured.")
        if not self._user_id:
            raise UnauthenticatedError("Sign in before connecting a Reddit account.")

        self._pending_state = state or secrets.token_urlsafe(16)
        params = {
            "client_id": settings.reddit_client_id,
            "response_type": "code",
            "state": self._pending_state,
            "redirect_uri": settings.reddit_redirect_uri,
            "duration": "permanent",
            "scope": settings.reddit_oauth_scopes,
        }
        return f"{settings.reddit_authorize_url}?{urlencode(params)}"

    async def complete_authorization(self, code: str, state: str | None = None) -> bool:
        """Exchange an authorization code and adopt the resulting credential."""
        if not await self._check_state(state):
            return False
        try:
            response = await asyncio.wait_for(
                self._endpoint.exchange_code(code),
                timeout=self.refresh_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Authorization code exchange timed out")
            await self._notifier.error("Connecting to Reddit timed out. Please try again.")
            return False
        except RedditFeedError as e:
            logger.warning("Authorization code exchange failed", error=e.message, status=e.status_code)
            await self._notifier.error("Failed to connect your Reddit account.")
            return False
        return await self._adopt(response)

    async def accept_redirect_tokens(self, encoded: str, state: str | None = None) -> bool:
        """Adopt the base64 token bundle delivered by a broker redirect."""
        if not await self._check_state(state):
            return False
        try:
            response = TokenResponse.decode(encoded)
        except ValueError:
            logger.warning("Malformed redirect token bundle")
            await self._notifier.error("Received invalid Reddit credentials. Please try again.")
            return False
        return await self._adopt(response)

    async def handle_redirect(self, params: Mapping[str, str]) -> bool | None:
        """
        Process the query parameters of a broker redirect.

        Returns:
            True/False for a token or error redirect, None when the
            parameters carry neither
        """
        state = params.get("state")
        if params.get(REDIRECT_ERROR_PARAM):
            code = params[REDIRECT_ERROR_PARAM]
            logger.warning("Authorization redirect carried an error", error=code, status=params.get("code"))
            await self._notifier.error(
                REDIRECT_ERROR_MESSAGES.get(code, REDIRECT_ERROR_MESSAGES["failed"])
            )
            return False
        if params.get(REDIRECT_TOKENS_PARAM):
            return await self.accept_redirect_tokens(params[REDIRECT_TOKENS_PARAM], state)
        return None

    async def disconnect(self) -> None:
        """
        Forget the credential locally and remotely.

        Local state is cleared first and stays cleared even when the
        remote delete fails.
        """
        user_id = self._user_id
        self._credential = AccessCredential.empty()
        self._attempt = RefreshAttemptRecord()
        self._pending_state = None
        self._state = LifecycleState.READY

        if not user_id:
            await self._notifier.success("Disconnected from Reddit.")
            return

        if await self._delete_stored():
            logger.info("Reddit account disconnected", user_id=user_id)
            await self._notifier.success("Disconnected from Reddit.")
        else:
            await self._notifier.error(
                "Disconnected locally, but removing saved Reddit credentials failed."
            )

    def sign_out(self) -> None:
        """Tear down local state on logout; persisted credentials stay."""
        self._reset(None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reset(self, user_id: str | None) -> None:
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._user_id = user_id
        self._credential = AccessCredential.empty()
        self._attempt = RefreshAttemptRecord()
        self._state = LifecycleState.UNINITIALIZED
        self._init_task = None
        self._pending_state = None

    def _degrade(self) -> None:
        """Drop to unauthenticated but keep the refresh token for a later retry."""
        current = self._credential
        self._credential = AccessCredential(
            refresh_token=current.refresh_token,
            scope=current.scope,
            username=current.username,
            is_authenticated=False,
        )

    async def _check_state(self, state: str | None) -> bool:
        if self._pending_state is not None and state != self._pending_state:
            logger.warning("OAuth state mismatch")
            await self._notifier.error("Reddit authorization could not be verified. Please try again.")
            return False
        return True

    async def _adopt(self, response: TokenResponse) -> bool:
        credential = response.to_credential(self._clock())
        if not credential.refresh_token:
            logger.warning("Authorization response missing refresh token")
            await self._notifier.error("Reddit did not grant offline access. Please reconnect.")
            return False

        self._credential = credential
        self._attempt = RefreshAttemptRecord()
        self._pending_state = None
        self._state = LifecycleState.READY
        logger.info("Reddit account connected", user_id=self._user_id, scope=credential.scope)
        await self._persist(credential)
        await self._notifier.success("Reddit account connected.")
        return True

    async def _persist(self, credential: AccessCredential) -> None:
        if not self._user_id:
            return
        try:
            saved = await self._store.save(self._user_id, credential)
        except Exception as e:
            logger.error("Credential save failed", user_id=self._user_id, error=str(e))
            saved = False
        if not saved:
            await self._notifier.warning(
                "Could not save Reddit credentials; this session will work until you reload."
            )

    async def _delete_stored(self) -> bool:
        if not self._user_id:
            return True
        try:
            return await self._store.delete(self._user_id)
        except Exception as e:
            logger.error("Credential delete failed", user_id=self._user_id, error=str(e))
            return False


def create_token_endpoint(settings: Settings | None = None) -> TokenEndpoint:
    """
    Pick the token endpoint for the current configuration.

    A configured broker wins; otherwise Reddit is called directly with
    the client secret.

    Raises:
        ConfigurationError: When neither is configured
    """
    settings = settings or get_settings()
    if settings.broker_configured:
        return BrokerTokenClient(settings=settings)
    if settings.reddit_configured:
        return RedditTokenClient(settings=settings)
    raise ConfigurationError(
        "Configure TOKEN_BROKER_URL or REDDIT_CLIENT_ID/REDDIT_CLIENT_SECRET."
    )
