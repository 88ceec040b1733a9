"""
Configuration management for Quantica billing.

Supports environment variables, .env files, and YAML configuration.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quantica_billing.billing.models import PaymentProviderConfig, PaymentProviderKind


class BillingSettings(BaseSettings):
    """Billing store, API key and payment provider settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUANTICA_BILLING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Persistence
    state_path: Path = Path(".quantica/billing_state.json")

    # API keys
    key_prefix: str = "QNT"
    default_usage_limit: int | None = Field(default=None, gt=0)

    # Providers
    enabled_providers: list[PaymentProviderKind] = Field(
        default_factory=lambda: list(PaymentProviderKind)
    )
    disabled_providers: list[PaymentProviderKind] = Field(default_factory=list)
    webhook_secrets: dict[PaymentProviderKind, SecretStr] = Field(default_factory=dict)

    @field_validator("key_prefix")
    @classmethod
    def validate_key_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v or "-" in v:
            raise ValueError("key_prefix must be non-empty and must not contain '-'")
        return v

    def provider_configs(self) -> list[PaymentProviderConfig]:
        """
        Provider configs for every registered provider.

        Providers listed in ``disabled_providers`` stay registered but reject
        every call as unavailable.
        """
        configs = []
        for kind in self.enabled_providers:
            secret = self.webhook_secrets.get(kind)
            configs.append(
                PaymentProviderConfig(
                    provider=kind,
                    enabled=kind not in self.disabled_providers,
                    webhook_secret=secret.get_secret_value() if secret else None,
                )
            )
        return configs


class LoggingSettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUANTICA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'console'")
        return v


class Settings(BaseSettings):
    """Combined application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    billing: BillingSettings = Field(default_factory=BillingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        import yaml

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}

        return cls(**data)


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
