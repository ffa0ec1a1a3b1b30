"""Configuration package."""

from finledger.config.settings import (
    DEFAULT_SEED_RATES,
    AppSettings,
    CurrencySettings,
    DatabaseSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "DEFAULT_SEED_RATES",
    "AppSettings",
    "CurrencySettings",
    "DatabaseSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
