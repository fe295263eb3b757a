"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

APP_ENV only selects the file. The rate limiting tier is driven by
APP_ENVIRONMENT so a testing deployment can still exercise production limits.
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


def parse_csv(value: str | None) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty items.

    Examples:
        >>> parse_csv("CF-Connecting-IP, X-Real-IP")
        ['CF-Connecting-IP', 'X-Real-IP']
        >>> parse_csv(None)
        []
    """
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class AppSettings(BaseSettings):
    """Application-wide configuration, including the rate limiter."""

    environment: str = Field(
        "development",
        description="Deployment tier: development, staging or production",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable rate limiting on the metered paths",
    )
    rate_limit_profile: str = Field(
        "widget",
        description="Limit table: 'standard' (flat per tier) or 'widget' (per traffic class)",
    )
    rate_limit_key_strategy: str = Field(
        "composite",
        description="Fingerprint format: 'composite' (env:ip:referer:bot) or 'prefixed' (widget|api:ip, standard profile only)",
    )
    rate_limit_key_prefix: str = Field(
        "widget-rl",
        description="Namespace for limiter keys in the shared store",
    )
    rate_limit_trusted_domain: str = Field(
        "biodentalcare.com",
        description="Front-end domain whose Referer earns the trusted widget ceiling",
    )
    rate_limit_bot_pattern: str = Field(
        r"bot|crawler|spider|scraper",
        description="Case-insensitive User-Agent pattern used to flag bots",
    )
    rate_limit_ip_headers: str = Field(
        "CF-Connecting-IP,X-Forwarded-For,X-Real-IP",
        description="Ordered, comma-separated headers consulted for the client IP",
    )
    rate_limit_paths: str = Field(
        "/api/validate-phone",
        description="Comma-separated request paths that are metered",
    )
    rate_limit_dev_frontend_hosts: str = Field(
        "localhost:5173,127.0.0.1:5173",
        description="Hosts of local front-end dev servers that skip metering outside production",
    )
    rate_limit_skip_failed_requests: bool = Field(
        True,
        description="Do not count requests that end with status >= 400 or raise",
    )
    rate_limit_skip_successful_requests: bool = Field(
        False,
        description="Do not count requests that end with status < 400",
    )
    rate_limit_window_ms: int | None = Field(
        None,
        description="Override the active tier's window length in milliseconds",
        ge=1,
    )
    rate_limit_max: int | None = Field(
        None,
        description="Override the active tier's default request ceiling",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Key-value store backing the rate limiter counters."""

    backend: str = Field(
        "memory",
        description="Store backend: memory, redis or none (binding absent)",
    )
    redis_url: str | None = Field(
        None,
        description="Redis connection URL (required for the redis backend)",
    )
    socket_timeout: float = Field(
        2.0,
        description="Redis socket timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class NumverifySettings(BaseSettings):
    """Upstream phone validation provider configuration."""

    api_key: str | None = Field(
        None,
        description="NumVerify access key",
    )
    base_url: str = Field(
        "http://apilayer.net/api/validate",
        description="NumVerify validation endpoint",
    )
    timeout_seconds: float = Field(
        10.0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="NUMVERIFY_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10_485_760, description="Rotate log file after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    numverify: NumverifySettings = Field(default_factory=NumverifySettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
