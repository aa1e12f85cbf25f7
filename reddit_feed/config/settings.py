"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the reddit-feed pipeline.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., DATABASE_URL).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # Reddit OAuth application
    reddit_client_id: str | None = None
    reddit_client_secret: str | None = None
    reddit_user_agent: str = "reddit-feed/0.1.0"
    reddit_redirect_uri: str | None = None
    reddit_oauth_scopes: str = "read identity history"
    reddit_api_base: str = "https://oauth.reddit.com"
    reddit_authorize_url: str = "https://www.reddit.com/api/v1/authorize"
    reddit_token_url: str = "https://www.reddit.com/api/v1/access_token"

    # Token broker (server side of the refresh endpoint)
    token_broker_url: str | None = None
    token_broker_key: str | None = None
    broker_service_keys: str = ""  # Comma-separated; empty = dev mode
    frontend_url: str = "http://localhost:5173"
    cors_origins: str = "*"
    api_host: str = "0.0.0.0"
    api_port: int = 8001

    # PostgreSQL (credential persistence; unset = in-memory only)
    database_url: str | None = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    # Token lifecycle
    refresh_timeout_seconds: float = Field(default=10.0, gt=0.0)
    init_timeout_seconds: float = Field(default=15.0, gt=0.0)
    token_expiry_skew_seconds: float = Field(default=60.0, ge=0.0)
    refresh_failure_cooldown_seconds: float = Field(default=60.0, ge=0.0)
    refresh_reuse_window_seconds: float = Field(default=5.0, ge=0.0)
    refresh_max_attempts: int = Field(default=1, ge=1, le=10)

    # Rate-limit governor
    rate_limit_base_backoff_seconds: float = Field(default=5.0, gt=0.0)
    rate_limit_max_backoff_seconds: float = Field(default=600.0, gt=0.0)
    rate_limit_burst_window_seconds: float = Field(default=10.0, ge=0.0)
    default_retry_after_seconds: float = Field(default=60.0, gt=0.0)

    # Listing fetches
    listing_limit: int = Field(default=15, ge=1, le=100)
    sort_variants: str = "hot,top:day"  # name[:time filter], comma-separated
    include_over_18: bool = True
    http_timeout_seconds: float = 30.0
    fetch_max_attempts: int = Field(default=1, ge=1, le=10)
    max_backoff_seconds: float = Field(default=60.0, ge=1.0, le=300.0)

    # Feed polling
    poll_interval_seconds: int = 60
    min_poll_interval_seconds: int = 30

    # Observability
    metrics_port: int = 8000

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def reddit_configured(self) -> bool:
        """Check if the Reddit OAuth application is configured."""
        return (
            self.reddit_client_id is not None
            and self.reddit_client_secret is not None
        )

    @property
    def broker_configured(self) -> bool:
        """Check if a token broker is configured for refreshes."""
        return self.token_broker_url is not None

    @property
    def store_configured(self) -> bool:
        """Check if persistent credential storage is configured."""
        return self.database_url is not None

    @property
    def service_keys(self) -> set[str]:
        """Parsed set of bearer keys the broker accepts."""
        return {k.strip() for k in self.broker_service_keys.split(",") if k.strip()}


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
