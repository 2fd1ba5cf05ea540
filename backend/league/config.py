"""
Application Configuration

Uses Pydantic Settings for type-safe configuration.
Only the composition root (main.py / services.py) reads `settings`;
everything below it receives plain values.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import AliasChoices, Field, field_validator, ConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    # === Core ===
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # === Database ===
    database_url: str = Field(
        default="sqlite:///./league.db",
        description="Database connection URL"
    )

    # === CORS ===
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # === Strava ===
    strava_client_id: Optional[str] = Field(default=None)
    strava_client_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("strava_client_secret", "strava_secret")
    )
    strava_api_url: str = Field(default="https://www.strava.com/api/v3")
    strava_oauth_url: str = Field(default="https://www.strava.com/oauth")
    strava_redirect_uri: Optional[str] = Field(
        default=None,
        description="OAuth callback URL registered with Strava"
    )
    strava_request_timeout: float = Field(default=15.0)

    # === Strava: batch backoff on 429 ===
    strava_max_retries: int = Field(default=3, ge=0)
    strava_backoff_base_seconds: float = Field(default=2.0, gt=0)
    strava_backoff_max_seconds: float = Field(default=60.0, gt=0)

    # === Tokens ===
    token_encryption_key: Optional[str] = Field(
        default=None,
        description="Fernet key for OAuth tokens at rest"
    )
    token_refresh_margin_seconds: int = Field(default=3600, ge=0)

    # === Webhooks ===
    webhook_enabled: bool = Field(default=False)
    webhook_callback_url: Optional[str] = Field(default=None)
    strava_webhook_verify_token: Optional[str] = Field(default=None)
    webhook_persist_events: bool = Field(default=True)
    webhook_queue_size: int = Field(default=100, ge=1)
    webhook_workers: int = Field(default=1, ge=1)
    webhook_check_interval_seconds: int = Field(default=6 * 3600, ge=60)

    # === Admin ===
    admin_api_key: Optional[str] = Field(
        default=None,
        description="Shared key for /admin endpoints (X-API-Key header)"
    )

    @field_validator('database_url')
    @classmethod
    def fix_postgres_url(cls, v: str) -> str:
        """Fix Render/Railway postgres:// URL to postgresql://"""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def strava_configured(self) -> bool:
        return bool(self.strava_client_id and self.strava_client_secret)

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
