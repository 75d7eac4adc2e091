"""Configuration settings for the gigboard API."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra env vars not in model
    )

    # Storage: "supabase" in deployments, "memory" for local development
    storage_backend: Literal["supabase", "memory"] = "supabase"

    # Supabase
    supabase_url: str | None = None
    supabase_secret_key: str | None = None  # Backend/admin access
    media_bucket: str = "gigboard-media"

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 1 week

    # Auth cookie
    cookie_secure: bool = True
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"

    # Admin dashboard shared password (bcrypt hash or plain text)
    admin_password: str | None = None

    # Distance lookups (OpenRouteService)
    ors_api_key: str | None = None
    distance_timeout_seconds: float = 5.0
    distance_cache_size: int = 10_000

    # Notifications
    email_api_key: str | None = None
    email_from: str | None = None
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_from_number: str | None = None

    # App
    debug: bool = False
    log_level: str = "INFO"
    # Reverse proxies allowed to set X-Forwarded-For, as CIDRs
    # (JSON list in the environment, e.g. TRUSTED_PROXIES='["10.20.0.0/16"]')
    trusted_proxies: list[str] = ["127.0.0.0/8", "::1/128"]
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
