"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Settings are grouped by concern: server behaviour (APP_), logging (LOG_) and
the client request pipeline (CLIENT_).
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment."""

    return AppSettings()


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()


def _build_client_settings() -> "ClientSettings":
    """Build client pipeline settings from environment."""

    return ClientSettings()


class AppSettings(BaseSettings):
    """Server-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    auth_required: bool = Field(
        True,
        description="Whether bearer token authentication is required",
    )
    api_tokens: str | None = Field(
        None,
        description="Comma-separated list of accepted bearer tokens",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable fixed-window rate limiting per client",
    )
    rate_limit_window_seconds: int = Field(
        15 * 60,
        description="Rate limit window size in seconds (shared by all route classes)",
        ge=1,
    )
    rate_limit_auth_max_requests: int = Field(
        5,
        description="Maximum requests per window on authentication routes",
    )
    rate_limit_api_max_requests: int = Field(
        100,
        description="Maximum requests per window on general API routes",
    )
    rate_limit_sweep_interval_seconds: float = Field(
        5 * 60,
        description="How often idle rate limit records are purged",
        gt=0,
    )
    rate_limit_message: str = Field(
        "リクエスト数の上限に達しました。しばらく待ってから再試行してください。",
        description="Localized message returned with HTTP 429 responses",
    )
    security_headers_enabled: bool = Field(
        True,
        description="Add X-Content-Type-Options, CSP and related headers to responses",
    )
    cors_origins: str = Field(
        "*",
        description="Comma-separated origins allowed to call the API from a browser",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class ClientSettings(BaseSettings):
    """Client request pipeline configuration."""

    api_base_url: str = Field(
        "http://localhost:3000",
        description="Origin of the kakeibo server",
    )
    api_base_path: str = Field("/api", description="Path prefix for API endpoints")
    timeout_seconds: float = Field(30.0, description="Transport timeout per attempt")
    max_retries: int = Field(3, description="Retries after the first attempt", ge=0)
    retry_delays: list[float] = Field(
        default_factory=lambda: [1.0, 2.0, 4.0],
        description="Backoff schedule in seconds, indexed by attempt number",
    )
    storage_path: str = Field(
        ".kakeibo/storage.json",
        description="File backing the durable client storage",
    )
    offline_queue_key: str = Field(
        "offlineQueue",
        description="Storage entry holding the serialized offline queue",
    )
    offline_queue_max_age_hours: float = Field(
        24.0,
        description="Queued requests older than this are discarded on replay failure",
        gt=0,
    )
    token_key: str = Field("authToken", description="Storage entry holding the bearer token")

    model_config = SettingsConfigDict(
        env_prefix="CLIENT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    client: ClientSettings = Field(default_factory=_build_client_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
