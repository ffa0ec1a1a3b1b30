"""Currency conversion service."""

from finledger.services.currency.converter import (
    CurrencyConverter,
    InvalidOperationError,
    UnsupportedCurrencyError,
)

__all__ = [
    "CurrencyConverter",
    "InvalidOperationError",
    "UnsupportedCurrencyError",
]
