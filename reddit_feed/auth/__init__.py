"""Reddit OAuth credentials - schemas, persistence, endpoints and lifecycle."""

from reddit_feed.auth.endpoints import BrokerTokenClient, RedditTokenClient, TokenEndpoint
from reddit_feed.auth.manager import TokenLifecycleManager, create_token_endpoint
from reddit_feed.auth.schemas import (
    AccessCredential,
    LifecycleState,
    RefreshAttemptRecord,
    TokenResponse,
)
from reddit_feed.auth.store import (
    CredentialStore,
    InMemoryCredentialStore,
    PostgresCredentialStore,
)

__all__ = [
    "AccessCredential",
    "BrokerTokenClient",
    "CredentialStore",
    "InMemoryCredentialStore",
    "LifecycleState",
    "PostgresCredentialStore",
    "RedditTokenClient",
    "RefreshAttemptRecord",
    "TokenEndpoint",
    "TokenLifecycleManager",
    "TokenResponse",
    "create_token_endpoint",
]
