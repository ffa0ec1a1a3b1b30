"""
Currency Converter

Converts amounts between currencies through a single base currency.

Rates are "units of base currency per 1 unit of this currency". The base
currency is fixed at rate 1. Converting FROM a currency multiplies by its
rate to reach the base; converting TO a currency divides by its rate.

DESIGN DECISION: The table is process-wide mutable state. One lock guards
it for readers and writers alike, and every conversion reads both of its
rates inside a single critical section. A conversion therefore sees the
table either before or after a concurrent update_rate, never a mix.

Seed rates are illustrative, not live market data.
"""

import threading
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import structlog

from finledger.config import DEFAULT_SEED_RATES


logger = structlog.get_logger(__name__)

AMOUNT_PLACES = Decimal("0.01")
RATE_PLACES = Decimal("0.000001")


class UnsupportedCurrencyError(ValueError):
    """A currency code is not present in the rate table."""
    pass


class InvalidOperationError(Exception):
    """The requested operation is not allowed (e.g. changing the base rate)."""
    pass


def _normalize(currency_code: str) -> str:
    return currency_code.strip().upper()


class CurrencyConverter:
    """
    Cross-currency conversion and rate lookup.

    Usage:
        converter = CurrencyConverter()
        converter.convert(Decimal("100"), "USD", "HKD")  # Decimal("777.00")
    """

    def __init__(
        self,
        base_currency: str = "HKD",
        rates: Optional[Mapping[str, Decimal]] = None,
    ):
        """
        Args:
            base_currency: Code fixed at rate 1
            rates: Non-base rates relative to the base; defaults to the
                   built-in seed table
        """
        self._base = _normalize(base_currency)
        self._lock = threading.Lock()
        self._rates: dict[str, Decimal] = {self._base: Decimal(1)}

        seed = DEFAULT_SEED_RATES if rates is None else rates
        for code, rate in seed.items():
            code = _normalize(code)
            if code == self._base:
                continue
            self._rates[code] = self._check_rate(code, rate)

    @property
    def base_currency(self) -> str:
        return self._base

    @staticmethod
    def _check_rate(code: str, rate) -> Decimal:
        rate = Decimal(rate)
        if rate <= 0:
            raise ValueError(f"Exchange rate for {code} must be positive, got {rate}")
        return rate

    def supports(self, currency_code: str) -> bool:
        currency_code = _normalize(currency_code)
        with self._lock:
            return currency_code in self._rates

    def convert(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
    ) -> Decimal:
        """
        Convert an amount between two currencies.

        Same-currency conversion returns the amount unchanged (no rounding).
        Otherwise the result is rounded to 2 places, half-up.

        Raises:
            UnsupportedCurrencyError: naming from_currency if it is unknown
                (also when both are), otherwise to_currency
        """
        from_currency = _normalize(from_currency)
        to_currency = _normalize(to_currency)
        if from_currency == to_currency:
            return amount

        with self._lock:
            rate_from = self._rates.get(from_currency)
            rate_to = self._rates.get(to_currency)

        if rate_from is None:
            raise UnsupportedCurrencyError(f"Unsupported currency: {from_currency}")
        if rate_to is None:
            raise UnsupportedCurrencyError(f"Unsupported currency: {to_currency}")

        amount_in_base = amount * rate_from
        return (amount_in_base / rate_to).quantize(AMOUNT_PLACES, rounding=ROUND_HALF_UP)

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        """
        Ratio of the two table rates (rate of to_currency / rate of
        from_currency), 6 places half-up. Same currency gives exactly 1.

        Raises:
            UnsupportedCurrencyError: if either code is unknown
        """
        from_currency = _normalize(from_currency)
        to_currency = _normalize(to_currency)
        if from_currency == to_currency:
            return Decimal(1)

        with self._lock:
            rate_from = self._rates.get(from_currency)
            rate_to = self._rates.get(to_currency)

        if rate_from is None or rate_to is None:
            raise UnsupportedCurrencyError("Unsupported currency")

        return (rate_to / rate_from).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)

    def update_rate(self, currency_code: str, rate: Decimal) -> Optional[Decimal]:
        """
        Replace (or add) the rate of a non-base currency.

        Returns:
            The previous rate, or None if the currency was new

        Raises:
            InvalidOperationError: if currency_code is the base currency
            ValueError: if rate is not positive
        """
        currency_code = _normalize(currency_code)
        if currency_code == self._base:
            raise InvalidOperationError(
                f"Cannot update {self._base} rate as it is the base currency (1.0)"
            )
        rate = self._check_rate(currency_code, rate)

        with self._lock:
            old_rate = self._rates.get(currency_code)
            self._rates[currency_code] = rate

        logger.info(
            "exchange_rate_updated",
            currency=currency_code,
            old_rate=str(old_rate) if old_rate is not None else None,
            new_rate=str(rate),
        )
        return old_rate

    def list_rates(self) -> dict[str, Decimal]:
        """Copy of the full code -> rate table (base included)."""
        with self._lock:
            return dict(self._rates)
