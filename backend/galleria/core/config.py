"""Application configuration using pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GALLERIA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Galleria"
    version: str = "0.3.0"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=3000, description="Server port")

    # Public base URL used as the Drive webhook callback address.
    # Google only delivers to public HTTPS endpoints, so watch
    # registration is skipped while this is empty or plain http.
    app_url: str = Field(
        default="",
        description="Public base URL (e.g., https://galleria.example.com)",
    )
    webhook_path: str = "/api/webhooks/drive"

    # Paths
    config_path: Path = Field(
        default=Path("/config"),
        description="Path for configuration files and database",
    )

    # Database
    database_url: str | None = Field(
        default=None,
        description="Database connection URL (defaults to SQLite under config_path)",
    )

    # CORS
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )

    # Google Drive / OAuth
    drive_api_base: str = "https://www.googleapis.com/drive/v3"
    google_oauth_token_url: str = "https://oauth2.googleapis.com/token"
    google_thumbnail_base: str = "https://lh3.googleusercontent.com/d"
    google_client_id: str | None = None
    google_client_secret: str | None = None
    encryption_key: str | None = Field(
        default=None,
        description="Fernet key used to encrypt stored refresh tokens",
    )
    http_timeout: float = Field(default=30.0, gt=0)

    # Watch channels
    watch_ttl_days: int = Field(
        default=7,
        ge=1,
        le=30,
        description="Requested lifetime of a Drive watch channel",
    )
    renewal_window_hours: int = Field(
        default=24,
        ge=1,
        le=168,
        description="Renew channels expiring within this many hours",
    )
    webhook_debounce_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Quiet period before a folder is invalidated",
    )
    cron_secret: str | None = Field(
        default=None,
        description="Bearer secret for the renewal trigger endpoint",
    )

    # Cache tiers
    cdn_purge_url: str | None = Field(
        default=None,
        description="CDN tag purge endpoint (surrogate-key purge)",
    )
    cdn_purge_token: str | None = None
    media_cache_ttl: int = Field(
        default=86400,
        description="Seconds proxied cover images stay in the app cache",
    )
    photo_list_cache_ttl: int = Field(
        default=3600,
        description="Seconds Drive photo listings stay in the app cache",
    )
    app_cache_max_entries: int = Field(
        default=2048,
        ge=1,
        description="Entries the app cache holds before evicting least recently used",
    )
    app_cache_sweep_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Interval between sweeps of expired app cache entries",
    )

    @property
    def webhook_url(self) -> str:
        """Get the absolute Drive webhook callback URL."""
        return f"{self.app_url.rstrip('/')}{self.webhook_path}"

    @property
    def watch_registration_enabled(self) -> bool:
        """Check if Drive can reach this instance's webhook."""
        return self.app_url.startswith("https://")

    @property
    def google_oauth_configured(self) -> bool:
        """Check if Google OAuth client credentials are configured."""
        return self.google_client_id is not None and self.google_client_secret is not None

    @property
    def cdn_purge_enabled(self) -> bool:
        """Check if a CDN purge tier is configured."""
        return bool(self.cdn_purge_url)

    @property
    def db_path(self) -> Path:
        """Get the SQLite database file path."""
        return self.config_path / "galleria.db"


# Global settings instance
settings = Settings()
