"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _is_production() -> bool:
    return APP_ENV == "production"


class LogSettings(BaseSettings):
    """Logging configuration.

    ``output``/``file_path``/rotation pick where every log line goes;
    ``structured`` selects JSON or human-readable lines for event entries and
    stdlib records alike.
    """

    level: str = Field(
        default_factory=lambda: "info" if _is_production() else "debug",
        description="Minimum level: debug, info, warn or error",
    )
    output: str = Field(
        "stdout",
        description="Log destination for events and stdlib records: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file'",
    )
    max_bytes: int = Field(
        0,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )
    service_name: str = Field(
        "apnisec",
        description="Service name stamped on structured event logs",
    )
    enable_console: bool = Field(
        True,
        description="Mirror event log entries to the configured log output",
    )
    structured: bool = Field(
        default_factory=_is_production,
        description="Emit JSON lines instead of human-readable text",
    )
    buffer_size: int = Field(
        1000,
        description="Number of event log entries retained in memory",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Sliding-window rate limiting for authentication endpoints."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting on register/login",
    )
    max_requests: int = Field(
        5,
        description="Maximum requests allowed per identifier within the window",
        ge=1,
    )
    window_ms: int = Field(
        60000,
        description="Sliding window size in milliseconds",
        ge=1,
    )
    sweep_interval_ms: int | None = Field(
        300000,
        description="Drop identifiers with empty windows at most this often (unset disables)",
        ge=1,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers on rate limited endpoints",
    )
    client_ip_header: str = Field(
        "X-Forwarded-For",
        description="Header holding the original client address behind a proxy",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class AuthSettings(BaseSettings):
    """Authentication configuration."""

    jwt_secret: str = Field(
        "change-me-in-production",
        description="Secret used to sign session tokens",
    )
    jwt_algorithm: str = Field(
        "HS256",
        description="JWT signing algorithm",
    )
    token_expire_minutes: int = Field(
        60 * 24 * 7,
        description="Session token lifetime in minutes",
        ge=1,
    )
    min_password_length: int = Field(
        6,
        description="Minimum accepted password length on registration",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.

    Environments:
    - development: Local development (colourised logs, debug level)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (JSON logs, info level)
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=LogSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
