"""
Credential persistence backends.

Both stores follow the same contract: save/delete return a success
flag and load returns None when nothing usable is stored. Backend
failures are logged and reported through the return value so the
token manager can fall back to in-memory operation.
"""

import logging
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from reddit_feed.auth.schemas import AccessCredential
from reddit_feed.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS reddit_auth_tokens (
    user_id       TEXT PRIMARY KEY,
    access_token  TEXT,
    refresh_token TEXT NOT NULL,
    expires_at    TIMESTAMPTZ,
    scope         TEXT,
    username      TEXT,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_UPSERT_SQL = """
INSERT INTO reddit_auth_tokens (user_id, access_token, refresh_token, expires_at, scope, username)
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (user_id) DO UPDATE SET
    access_token = EXCLUDED.access_token,
    refresh_token = EXCLUDED.refresh_token,
    expires_at = EXCLUDED.expires_at,
    scope = EXCLUDED.scope,
    username = COALESCE(EXCLUDED.username, reddit_auth_tokens.username),
    updated_at = NOW()
"""

_SELECT_SQL = """
SELECT access_token, refresh_token, expires_at, scope, username
FROM reddit_auth_tokens
WHERE user_id = $1
"""

_DELETE_SQL = "DELETE FROM reddit_auth_tokens WHERE user_id = $1"


@runtime_checkable
class CredentialStore(Protocol):
    """Per-user credential persistence."""

    async def save(self, user_id: str, credential: AccessCredential) -> bool: ...

    async def load(self, user_id: str) -> AccessCredential | None: ...

    async def delete(self, user_id: str) -> bool: ...


class InMemoryCredentialStore:
    """Dict-backed store; the default when no database is configured."""

    def __init__(self) -> None:
        self._credentials: dict[str, AccessCredential] = {}

    async def save(self, user_id: str, credential: AccessCredential) -> bool:
        if not credential.refresh_token:
            return False
        self._credentials[user_id] = credential
        return True

    async def load(self, user_id: str) -> AccessCredential | None:
        return self._credentials.get(user_id)

    async def delete(self, user_id: str) -> bool:
        self._credentials.pop(user_id, None)
        return True

    def __len__(self) -> int:
        return len(self._credentials)


def _to_timestamp(value: float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _record_to_credential(record) -> AccessCredential | None:
    """Convert an asyncpg Record; rows without a refresh token count as absent."""
    refresh_token = record["refresh_token"]
    if not refresh_token:
        return None
    expires_at = record["expires_at"]
    return AccessCredential(
        access_token=record["access_token"],
        refresh_token=refresh_token,
        expires_at=expires_at.timestamp() if expires_at is not None else None,
        scope=record["scope"],
        username=record["username"],
        is_authenticated=True,
    )


class PostgresCredentialStore:
    """Credential store on the reddit_auth_tokens table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the reddit_auth_tokens table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("reddit_auth_tokens table ensured")

    async def save(self, user_id: str, credential: AccessCredential) -> bool:
        if not credential.refresh_token:
            logger.warning(f"Refusing to persist credential without refresh token for {user_id}")
            return False
        try:
            await self._db.execute(
                _UPSERT_SQL,
                user_id,
                credential.access_token,
                credential.refresh_token,
                _to_timestamp(credential.expires_at),
                credential.scope,
                credential.username,
            )
        except Exception as e:
            logger.error(f"Failed to save Reddit credential for {user_id}: {e}")
            return False
        return True

    async def load(self, user_id: str) -> AccessCredential | None:
        try:
            record = await self._db.fetchrow(_SELECT_SQL, user_id)
        except Exception as e:
            logger.error(f"Failed to load Reddit credential for {user_id}: {e}")
            return None
        if record is None:
            return None
        return _record_to_credential(record)

    async def delete(self, user_id: str) -> bool:
        try:
            await self._db.execute(_DELETE_SQL, user_id)
        except Exception as e:
            logger.error(f"Failed to delete Reddit credential for {user_id}: {e}")
            return False
        return True
