"""Core configuration."""

from quantica_billing.core.config import (
    Settings,
    BillingSettings,
    LoggingSettings,
    get_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "BillingSettings",
    "LoggingSettings",
    "get_settings",
    "reload_settings",
]
