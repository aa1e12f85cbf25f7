"""
Credential schemas for the Reddit OAuth token lifecycle.

AccessCredential is the single source of truth for the current token
pair; only TokenLifecycleManager creates new instances of it.
"""

import base64
import binascii
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class LifecycleState(str, Enum):
    """Lifecycle of a TokenLifecycleManager instance."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class AccessCredential(BaseModel):
    """
    Current Reddit credential.

    expires_at is epoch seconds. is_authenticated implies refresh_token.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: float | None = None
    scope: str | None = None
    username: str | None = None
    is_authenticated: bool = False

    @model_validator(mode="after")
    def check_refresh_token(self) -> "AccessCredential":
        if self.is_authenticated and not self.refresh_token:
            raise ValueError("An authenticated credential requires a refresh token")
        return self

    @classmethod
    def empty(cls) -> "AccessCredential":
        """The signed-out sentinel."""
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.access_token is None and self.refresh_token is None

    def is_valid(self, now: float | None = None, skew: float = 60.0) -> bool:
        """Access token present and not expiring within ``skew`` seconds."""
        if not self.access_token or self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return self.expires_at - current > skew

    @property
    def expires_at_datetime(self) -> datetime | None:
        if self.expires_at is None:
            return None
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)


class TokenResponse(BaseModel):
    """Token payload returned by the authorization and refresh endpoints."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    expires_in: float = Field(default=3600, ge=0)
    scope: str | None = None
    token_type: str | None = "bearer"

    def to_credential(
        self,
        now: float,
        previous: AccessCredential | None = None,
    ) -> AccessCredential:
        """
        Build the credential this response yields.

        Rotation is optional: a missing refresh_token (or scope) keeps the
        previous one.
        """
        previous = previous or AccessCredential.empty()
        refresh_token = self.refresh_token or previous.refresh_token
        return AccessCredential(
            access_token=self.access_token,
            refresh_token=refresh_token,
            expires_at=now + self.expires_in,
            scope=self.scope or previous.scope,
            username=previous.username,
            is_authenticated=refresh_token is not None,
        )

    def encode(self) -> str:
        """URL-safe base64 JSON, the form a broker redirect carries."""
        raw = json.dumps(self.model_dump(exclude_none=True)).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii")

    @classmethod
    def decode(cls, encoded: str) -> "TokenResponse":
        """
        Inverse of encode(); accepts standard or URL-safe alphabets.

        Raises:
            ValueError: If the payload is not a token bundle
        """
        padded = encoded.strip() + "=" * (-len(encoded.strip()) % 4)
        try:
            raw = base64.urlsafe_b64decode(padded.replace("+", "-").replace("/", "_"))
            data: Any = json.loads(raw)
            return cls.model_validate(data)
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            raise ValueError("Malformed token bundle") from e


@dataclass
class RefreshAttemptRecord:
    """
    Single-slot memo of the most recent refresh attempt.

    Written before the refresh request is awaited so concurrent callers
    see it; overwritten on every attempt.
    """

    token: str | None = None
    timestamp: float = 0.0
    failed: bool = False
    succeeded: bool = False
    in_flight: Any = field(default=None, repr=False)  # asyncio.Task[str | None]

    def matches(self, token: str | None) -> bool:
        return token is not None and self.token == token
