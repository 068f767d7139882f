"""
Tests for the CLI formatting module.

Tests cover:
- Gain colors
- Money, percent and quantity formatting
- Missing value indicator
"""

from decimal import Decimal

import pytest

from ledgerfolio.cli.formatting import (
    MISSING,
    format_missing,
    format_money,
    format_percent,
    format_quantity,
    format_signed_money,
    gain_color,
)


class TestGainColor:
    def test_gain_is_green(self):
        assert gain_color(Decimal("0.01")) == "green"

    def test_loss_is_red(self):
        assert gain_color(-5) == "red"

    @pytest.mark.parametrize("value", [None, 0, Decimal("0")])
    def test_flat_is_white(self, value):
        assert gain_color(value) == "white"


class TestFormatMoney:
    def test_usd(self):
        assert format_money(Decimal("1234.5")) == "$1,234.50"

    def test_negative(self):
        assert format_money(Decimal("-20")) == "-$20.00"

    def test_known_currency(self):
        assert format_money(10, currency="eur") == "€10.00"

    def test_unknown_currency_uses_code(self):
        assert format_money(10, currency="CHF") == "10.00 CHF"

    def test_missing(self):
        assert format_money(None) == MISSING

    def test_signed(self):
        assert format_signed_money(Decimal("150")) == "[green]+$150.00[/green]"
        assert format_signed_money(Decimal("-1")) == "[red]-$1.00[/red]"


class TestFormatPercent:
    def test_plain(self):
        assert format_percent(Decimal("12.345")) == "+12.35%"

    def test_colored(self):
        assert format_percent(-3, colored=True) == "[red]-3.00%[/red]"

    def test_missing(self):
        assert format_percent(None) == MISSING


class TestFormatQuantity:
    def test_drops_trailing_zeros(self):
        assert format_quantity(Decimal("10.500")) == "10.5"

    def test_whole_decimal_has_no_exponent(self):
        assert format_quantity(Decimal("100")) == "100"

    def test_fractional_shares(self):
        assert format_quantity(Decimal("0.00012345")) == "0.00012345"

    def test_zero(self):
        assert format_quantity(Decimal("0.000")) == "0"


class TestFormatMissing:
    def test_value_passes_through(self):
        assert format_missing(0) == 0

    def test_none_uses_default(self):
        assert format_missing(None) == MISSING
        assert format_missing(None, "n/a") == "n/a"
