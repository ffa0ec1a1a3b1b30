"""
Configuration Management for the Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SEED_RATES: dict[str, Decimal] = {
    "USD": Decimal("7.77"),
    "EUR": Decimal("9.01"),
    "CNY": Decimal("1.09"),
    "SGD": Decimal("5.97"),
}


class DatabaseSettings(BaseSettings):
    """Relational storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINLEDGER_DB_",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite+pysqlite:///data/finance.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)"
    )


class CurrencySettings(BaseSettings):
    """
    Exchange rate table configuration.

    Rates are "units of base currency per 1 unit of this currency".
    These are seed values, not live market rates.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINLEDGER_CURRENCY_",
        extra="ignore"
    )

    base_currency: str = Field(
        default="HKD",
        min_length=3,
        max_length=3,
        description="Currency fixed at rate 1"
    )
    seed_rates: dict[str, Decimal] = Field(
        default_factory=lambda: dict(DEFAULT_SEED_RATES),
        description="Initial non-base rates relative to the base currency"
    )

    @field_validator('base_currency')
    @classmethod
    def normalize_base_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator('seed_rates')
    @classmethod
    def validate_seed_rates(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        """Rates must be positive; codes are normalized to upper case."""
        normalized = {}
        for code, rate in v.items():
            if rate <= 0:
                raise ValueError(f"Exchange rate for {code} must be positive")
            normalized[code.strip().upper()] = rate
        return normalized


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
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level for the stdlib logger behind structlog"
    )

    # Authentication
    min_password_length: int = Field(
        default=6,
        ge=1,
        le=128,
        description="Minimum accepted password length at registration"
    )

    # Validation thresholds
    max_transaction_amount: Decimal = Field(
        default=Decimal("1000000"),
        gt=0,
        description="Amounts above this are flagged for review (not rejected)"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future a transaction date can be"
    )

    # Statement import
    statement_date_format: str = Field(
        default="%d %b %Y",
        description="strptime format for statement dates once the year is appended"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper()


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def currency(self) -> CurrencySettings:
        return CurrencySettings()

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

    for name in ("database", "currency", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
