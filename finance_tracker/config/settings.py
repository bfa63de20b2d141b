"""
Configuration Management for Finance Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which hosted services the app talks to and
ensures the required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SupabaseSettings(BaseSettings):
    """Hosted database and authentication service configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Project URL, e.g. https://<project>.supabase.co"
    )
    anon_key: str = Field(
        ...,
        description="Public anonymous API key"
    )
    oauth_redirect_url: Optional[str] = Field(
        default=None,
        description="Where the OAuth provider sends the user after sign-in"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=120,
        description="Timeout for a single HTTP request"
    )

    @field_validator('url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Paths are appended to the URL, so drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Supabase URL must be http(s): {v}")
        return v.rstrip("/")


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    debug_mode: bool = Field(
        default=False,
        description="Log at DEBUG regardless of log_level"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    # Which backend the data layer talks to
    backend: Literal["supabase", "memory"] = Field(
        default="supabase",
        description="'supabase' for the hosted service, 'memory' for a local demo"
    )

    # Display preferences
    currency_symbol: str = Field(
        default="₹",
        max_length=5,
        description="Currency symbol for new users"
    )
    default_theme: Literal["light", "dark"] = Field(
        default="light",
        description="Theme for new users"
    )

    # Session persistence
    session_file: Optional[Path] = Field(
        default=None,
        description="File used to persist the auth session between runs"
    )

    # Dashboard limits
    recent_transactions_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Transactions shown on the dashboard"
    )
    dashboard_budget_limit: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Budgets shown on the dashboard"
    )
    dashboard_goal_limit: int = Field(
        default=4,
        ge=1,
        le=50,
        description="Goals shown on the dashboard"
    )

    # Audit trail
    audit_buffer_size: int = Field(
        default=500,
        ge=10,
        le=10000,
        description="How many recent audit events are kept in memory"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug_mode else self.log_level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so the in-memory backend
    # works without any Supabase configuration

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.supabase
        results["supabase"] = True
    except Exception as e:
        results["supabase"] = False
        results["supabase_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
