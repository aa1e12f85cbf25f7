"""
Pydantic models for the token broker API.
"""

from pydantic import BaseModel, ConfigDict, Field


class CodeExchangeRequest(BaseModel):
    """Body of POST /reddit-auth/callback."""

    code: str | None = Field(default=None, description="Authorization code from Reddit")


class RefreshRequest(BaseModel):
    """Body of POST /reddit-auth/refresh."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str | None = Field(
        default=None,
        alias="refreshToken",
        description="Refresh token to exchange for a new access token",
    )


class TokenPayload(BaseModel):
    """Token response passed through from Reddit."""

    access_token: str
    refresh_token: str | None = None
    expires_in: float
    scope: str | None = None
    token_type: str | None = None


class BrokerError(BaseModel):
    """Error body returned by the broker."""

    error: str
    error_code: str | None = None
    details: str | None = None
    status: int | None = Field(default=None, description="Status Reddit answered with")


class ComponentHealth(BaseModel):
    """Health of a single dependency."""

    status: str = Field(..., description="healthy, unhealthy or disabled")
    latency_ms: float | None = None
    details: dict[str, str] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Overall status: healthy, degraded, or unhealthy")
    reddit_configured: bool = Field(..., description="Client id and secret are set")
    components: dict[str, ComponentHealth] = Field(default_factory=dict)
    version: str
