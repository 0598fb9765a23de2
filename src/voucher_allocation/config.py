from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LEGACY_DSN_ENV = "VOUCHERS_DATABASE_URL"


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    dsn: str = Field(default="sqlite:///./vouchers.db")
    statement_timeout_ms: int = Field(default=2000, ge=100, le=60_000)
    echo: bool = Field(default=False)


class AllocationSettings(BaseModel):
    """Knobs of the candidate loop."""

    max_attempts: int = Field(default=10, ge=1, le=100)
    assignment_window_hours: float = Field(default=24.0, gt=0, le=24 * 30)
    retry_after_seconds: int = Field(default=30, ge=1, le=3600)


class VerificationConfig(BaseModel):
    """External verification authority endpoints."""

    endpoint: str = Field(default="https://phone.holonym.io/sessions/is-voucher-redeemed")
    url_base: str = Field(
        default="https://silksecure.net/holonym/diff-wallet/phone/issuance/prereqs",
        description="Base of the link handed to account holders.",
    )
    timeout_seconds: float = Field(default=5.0, gt=0, le=30.0)

    @field_validator("endpoint", "url_base", mode="before")
    @classmethod
    def _strip(cls, value: object) -> str:
        text = str(value or "").strip()
        if not text.startswith(("http://", "https://")):
            raise ValueError("CONFIG_URL_INVALID: expected an absolute http(s) URL")
        return text


class SweeperConfig(BaseModel):
    interval_seconds: float = Field(default=60.0, ge=1.0, le=3600.0)


class AppConfig(BaseSettings):
    """Voucher allocation service settings."""

    model_config = SettingsConfigDict(
        env_prefix="VOUCHERS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    allocation: AllocationSettings = Field(default_factory=AllocationSettings)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    sweeper: SweeperConfig = Field(default_factory=SweeperConfig)
    enable_debug_logs: bool = Field(default=False)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from the environment.

        ``VOUCHERS_DATABASE_URL`` is honoured when the nested DSN variable is
        absent so existing deployments keep their connection string.
        """

        config = cls()  # type: ignore[call-arg]
        legacy = os.environ.get(_LEGACY_DSN_ENV, "").strip()
        if legacy and "VOUCHERS_DATABASE__DSN" not in os.environ:
            config.database = config.database.model_copy(update={"dsn": legacy})
        return config


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return AppConfig.from_env()


__all__ = [
    "AllocationSettings",
    "AppConfig",
    "DatabaseConfig",
    "SweeperConfig",
    "VerificationConfig",
    "get_config",
]
