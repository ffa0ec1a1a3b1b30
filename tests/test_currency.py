"""Tests for CurrencyConverter."""

import threading
from decimal import Decimal

import pytest

from finledger.services.currency import (
    CurrencyConverter,
    InvalidOperationError,
    UnsupportedCurrencyError,
)


class TestConvert:
    """Tests for convert()."""

    @pytest.mark.parametrize("amount", ["0", "-12.345", "1000", "0.001"])
    @pytest.mark.parametrize("code", ["HKD", "USD", "JPY"])
    def test_same_currency_unchanged(self, converter, amount, code):
        """Test that same-currency conversion returns the amount exactly."""
        value = Decimal(amount)
        result = converter.convert(value, code, code)
        assert result == value
        assert str(result) == amount

    def test_usd_to_hkd(self, converter):
        """Test conversion into the base currency multiplies by the rate."""
        assert converter.convert(Decimal("100"), "USD", "HKD") == Decimal("777.00")

    def test_hkd_to_usd(self, converter):
        """Test conversion out of the base currency divides by the rate."""
        result = converter.convert(Decimal("7770"), "HKD", "USD")
        assert result == Decimal("1000.00")
        assert str(result) == "1000.00"

    def test_cross_currency_rounds_half_up(self, converter):
        """Test non-base to non-base conversion, rounded to cents."""
        # 123.45 * 7.77 / 9.01 = 106.4602...
        assert converter.convert(Decimal("123.45"), "USD", "EUR") == Decimal("106.46")

    def test_round_trip_within_a_cent(self, converter):
        """Test that converting there and back stays within 0.01."""
        original = Decimal("123.45")
        there = converter.convert(original, "USD", "EUR")
        back = converter.convert(there, "EUR", "USD")
        assert abs(back - original) <= Decimal("0.01")

    def test_unknown_from_currency(self, converter):
        """Test the error names the unknown source currency."""
        with pytest.raises(UnsupportedCurrencyError, match="^Unsupported currency: JPY$"):
            converter.convert(Decimal("1"), "JPY", "USD")

    def test_unknown_to_currency(self, converter):
        """Test the error names the unknown target currency."""
        with pytest.raises(UnsupportedCurrencyError, match="^Unsupported currency: GBP$"):
            converter.convert(Decimal("1"), "USD", "GBP")

    def test_both_unknown_reports_from(self, converter):
        """Test that the source code is reported when both are unknown."""
        with pytest.raises(UnsupportedCurrencyError, match="^Unsupported currency: JPY$"):
            converter.convert(Decimal("1"), "JPY", "GBP")


class TestGetRate:
    """Tests for get_rate()."""

    @pytest.mark.parametrize("code", ["HKD", "USD", "EUR", "CNY", "SGD"])
    def test_same_currency_is_one(self, converter, code):
        """Test that a currency's rate against itself is exactly 1."""
        assert converter.get_rate(code, code) == Decimal(1)

    def test_rate_is_ratio_of_table_rates(self, converter):
        """Test rate_to / rate_from rounded to six places."""
        assert converter.get_rate("HKD", "USD") == Decimal("7.770000")
        assert converter.get_rate("USD", "HKD") == Decimal("0.128700")

    def test_unknown_currency_generic_message(self, converter):
        """Test that get_rate does not name the missing code."""
        with pytest.raises(UnsupportedCurrencyError) as exc_info:
            converter.get_rate("USD", "JPY")
        assert str(exc_info.value) == "Unsupported currency"


class TestUpdateRate:
    """Tests for update_rate() and list_rates()."""

    def test_base_currency_cannot_change(self, converter):
        """Test that the base rate is immutable."""
        with pytest.raises(InvalidOperationError) as exc_info:
            converter.update_rate("HKD", Decimal("2"))
        assert str(exc_info.value) == "Cannot update HKD rate as it is the base currency (1.0)"
        assert converter.list_rates()["HKD"] == Decimal(1)

    def test_custom_base_currency(self):
        """Test the error text follows the configured base."""
        converter = CurrencyConverter(base_currency="USD", rates={"HKD": Decimal("0.1287")})
        with pytest.raises(InvalidOperationError, match="Cannot update USD rate"):
            converter.update_rate("USD", Decimal("1"))
        assert converter.list_rates() == {"USD": Decimal(1), "HKD": Decimal("0.1287")}

    def test_update_replaces_rate(self, converter):
        """Test that conversions use the new rate."""
        old = converter.update_rate("EUR", Decimal("8.00"))
        assert old == Decimal("9.01")
        assert converter.convert(Decimal("10"), "EUR", "HKD") == Decimal("80.00")

    @pytest.mark.parametrize("code", ["hkd", " HKD ", "Hkd"])
    def test_base_currency_guard_ignores_case(self, converter, code):
        """Test that any spelling of the base code is refused."""
        with pytest.raises(InvalidOperationError):
            converter.update_rate(code, Decimal("2"))
        assert converter.list_rates()["HKD"] == Decimal(1)

    def test_lowercase_update_replaces_rate(self, converter):
        """Test that codes are normalized so one table entry exists per currency."""
        assert converter.update_rate("usd", Decimal("8")) == Decimal("7.77")
        assert converter.convert(Decimal("1"), "USD", "HKD") == Decimal("8.00")
        assert "usd" not in converter.list_rates()

    def test_lookups_ignore_case(self, converter):
        """Test that convert, get_rate and supports accept any spelling."""
        assert converter.supports(" usd")
        assert converter.convert(Decimal("100"), "usd", "hkd") == Decimal("777.00")
        assert converter.get_rate("hkd", "Usd") == Decimal("7.770000")

    def test_update_adds_currency(self, converter):
        """Test that an unknown code is added to the table."""
        assert converter.update_rate("JPY", Decimal("0.052")) is None
        assert converter.supports("JPY")
        assert converter.convert(Decimal("1000"), "JPY", "HKD") == Decimal("52.00")

    @pytest.mark.parametrize("rate", ["0", "-1"])
    def test_non_positive_rate_rejected(self, converter, rate):
        """Test that zero and negative rates are refused."""
        with pytest.raises(ValueError):
            converter.update_rate("EUR", Decimal(rate))
        assert converter.list_rates()["EUR"] == Decimal("9.01")

    def test_list_rates_is_a_copy(self, converter):
        """Test that mutating the returned table has no effect."""
        rates = converter.list_rates()
        rates["USD"] = Decimal("100")
        rates["XXX"] = Decimal("1")
        assert converter.list_rates()["USD"] == Decimal("7.77")
        assert not converter.supports("XXX")

    def test_default_table(self, converter):
        """Test the seed table."""
        assert converter.base_currency == "HKD"
        assert converter.list_rates() == {
            "HKD": Decimal(1),
            "USD": Decimal("7.77"),
            "EUR": Decimal("9.01"),
            "CNY": Decimal("1.09"),
            "SGD": Decimal("5.97"),
        }

    def test_concurrent_updates_never_tear(self, converter):
        """Test that conversions see either the old or the new rate."""
        allowed = {Decimal("901.00"), Decimal("800.00")}
        seen = set()
        stop = threading.Event()

        def writer():
            rates = [Decimal("8.00"), Decimal("9.01")]
            i = 0
            while not stop.is_set():
                converter.update_rate("EUR", rates[i % 2])
                i += 1

        def reader():
            for _ in range(2000):
                seen.add(converter.convert(Decimal("100"), "EUR", "HKD"))

        w = threading.Thread(target=writer)
        readers = [threading.Thread(target=reader) for _ in range(4)]
        w.start()
        for r in readers:
            r.start()
        for r in readers:
            r.join()
        stop.set()
        w.join()

        assert seen <= allowed
