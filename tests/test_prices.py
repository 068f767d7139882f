"""Tests for point-in-time price lookup."""

from datetime import date
from decimal import Decimal

from ledgerfolio.core.prices import (
    SOURCE_CURRENT,
    SOURCE_HISTORY,
    SOURCE_NONE,
    StaticPriceOracle,
    descending,
    price_at_date,
)

HISTORY = descending(
    [
        (date(2024, 1, 2), Decimal("100")),
        (date(2024, 1, 3), Decimal("101")),
        (date(2024, 1, 5), Decimal("103")),
    ]
)


class TestPriceAtDate:
    def test_exact_date(self):
        lookup = price_at_date(HISTORY, date(2024, 1, 3), threshold_days=3)
        assert lookup.price == Decimal("101")
        assert lookup.source == SOURCE_HISTORY
        assert not lookup.is_interpolated

    def test_latest_before_target(self):
        lookup = price_at_date(HISTORY, date(2024, 1, 4), threshold_days=3)
        assert lookup.price == Decimal("101")
        assert lookup.price_date == date(2024, 1, 3)
        assert not lookup.is_interpolated

    def test_stale_price_flagged(self):
        lookup = price_at_date(HISTORY, date(2024, 1, 10), threshold_days=3)
        assert lookup.price == Decimal("103")
        assert lookup.is_interpolated

    def test_age_equal_to_threshold_is_fresh(self):
        lookup = price_at_date(HISTORY, date(2024, 1, 8), threshold_days=3)
        assert not lookup.is_interpolated

    def test_falls_back_to_current_price(self):
        lookup = price_at_date(HISTORY, date(2023, 12, 29), current_price=Decimal("150"))
        assert lookup.price == Decimal("150")
        assert lookup.source == SOURCE_CURRENT
        assert lookup.is_interpolated

    def test_no_price_at_all(self):
        lookup = price_at_date([], date(2024, 1, 2))
        assert lookup.price == 0
        assert lookup.source == SOURCE_NONE
        assert lookup.is_interpolated
        assert lookup.is_missing


class TestStaticPriceOracle:
    def test_history_sorted_ascending(self):
        oracle = StaticPriceOracle(
            current={"aapl": "190"},
            history={"aapl": [(date(2024, 1, 3), "101"), (date(2024, 1, 2), 100)]},
        )

        assert oracle.current_price("aapl") == Decimal("190")
        assert [d for d, _ in oracle.price_history("aapl")] == [date(2024, 1, 2), date(2024, 1, 3)]

    def test_unknown_asset(self):
        oracle = StaticPriceOracle()
        assert oracle.current_price("x") is None
        assert oracle.price_history("x") == []
