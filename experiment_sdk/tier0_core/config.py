"""
experiment_sdk.tier0_core.config
────────────────────────────────
Typed configuration with env layering. Reads from .env → environment
variables. All fields are typed via Pydantic.

Cookie names are part of the deployment contract: renaming either cookie
resets every visitor's assignments, so change them only deliberately.

Minimal stack: pydantic-settings + python-dotenv
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DAY = 24 * 60 * 60


class ExperimentsConfig(BaseSettings):
    """
    Typed engine configuration. Every collaborator takes an explicit
    ``config=`` argument; ``get_config()`` is only the default.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ───────────────────────────────────────────────────────────
    app_name: str = Field(default="experiments", alias="APP_NAME")
    environment: str = Field(default="development", alias="APP_ENV")

    # ── Database ──────────────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./experiments.db",
        alias="DATABASE_URL",
    )
    query_timeout: float = Field(default=2.0, gt=0, alias="EXPERIMENTS_QUERY_TIMEOUT")

    # ── Cookies ───────────────────────────────────────────────────────────────
    visitor_cookie_name: str = Field(default="visitor_id", alias="EXPERIMENTS_VISITOR_COOKIE")
    visitor_cookie_max_age: int = Field(
        default=2 * 365 * _DAY, gt=0, alias="EXPERIMENTS_VISITOR_COOKIE_MAX_AGE"
    )
    assignment_cookie_name: str = Field(
        default="experiment_assignments", alias="EXPERIMENTS_ASSIGNMENT_COOKIE"
    )
    assignment_cookie_max_age: int = Field(
        default=90 * _DAY, gt=0, alias="EXPERIMENTS_ASSIGNMENT_COOKIE_MAX_AGE"
    )
    cookie_secure: bool | None = Field(default=None, alias="EXPERIMENTS_COOKIE_SECURE")
    cookie_samesite: Literal["lax", "strict", "none"] = Field(
        default="lax", alias="EXPERIMENTS_COOKIE_SAMESITE"
    )
    cookie_secret: SecretStr | None = Field(default=None, alias="EXPERIMENTS_COOKIE_SECRET")

    # ── Tracking ──────────────────────────────────────────────────────────────
    tracking_endpoint: str | None = Field(default=None, alias="EXPERIMENTS_TRACKING_ENDPOINT")
    tracking_timeout: float = Field(default=5.0, gt=0, alias="EXPERIMENTS_TRACKING_TIMEOUT")
    tracking_max_attempts: int = Field(default=2, ge=1, alias="EXPERIMENTS_TRACKING_MAX_ATTEMPTS")

    # ── Logging / errors ──────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="EXPERIMENTS_LOG_LEVEL")
    log_format: str = Field(default="json", alias="EXPERIMENTS_LOG_FORMAT")
    error_backend: str = Field(default="none", alias="EXPERIMENTS_ERROR_BACKEND")

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if v.lower() not in allowed:
            raise ValueError(f"environment must be one of {allowed}, got {v!r}")
        return v.lower()

    @model_validator(mode="after")
    def default_cookie_secure(self) -> "ExperimentsConfig":
        if self.cookie_secure is None:
            self.cookie_secure = self.is_production
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def signing_key(self) -> str | None:
        if self.cookie_secret is None:
            return None
        return self.cookie_secret.get_secret_value() or None


@lru_cache(maxsize=1)
def get_config() -> ExperimentsConfig:
    """
    Return the cached engine config.
    Call _reset_config() in tests to pick up new env vars.
    """
    return ExperimentsConfig()


def _reset_config() -> None:
    """For tests: clear the config cache."""
    get_config.cache_clear()


__all__ = ["ExperimentsConfig", "get_config"]
