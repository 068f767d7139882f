"""Tests for net worth as of a date and month-end history."""

from datetime import date
from decimal import Decimal
from types import MappingProxyType

import pytest

from ledgerfolio.core.planning.liabilities import LiabilityState
from ledgerfolio.core.planning.net_worth import (
    HoldingState,
    NetWorthCache,
    get_net_worth_history,
    month_ends,
    net_worth_at_date,
)
from ledgerfolio.core.prices import StaticPriceOracle
from ledgerfolio.core.types import PaymentEvent


class TestMonthEnds:
    def test_spans_months(self):
        assert month_ends(date(2024, 1, 15), date(2024, 3, 2)) == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
        ]

    def test_year_boundary(self):
        assert month_ends(date(2023, 12, 1), date(2024, 1, 1)) == [date(2023, 12, 31), date(2024, 1, 31)]

    def test_empty_range(self):
        assert month_ends(date(2024, 2, 1), date(2024, 1, 1)) == []


@pytest.fixture
def cache():
    oracle = StaticPriceOracle(
        current={"aapl": "200", "msft": "400"},
        history={"aapl": [(date(2024, 1, 31), "150"), (date(2024, 2, 29), "180")]},
    )
    loan = LiabilityState(id="loan", name="Car", balance=Decimal("9000"))
    payments = {
        "loan": [
            PaymentEvent("loan", date(2024, 2, 15), Decimal("500")),
            PaymentEvent("loan", date(2024, 3, 15), Decimal("500")),
        ]
    }
    return NetWorthCache.create(
        "p1",
        [
            HoldingState("aapl", Decimal("10")),
            HoldingState("msft", Decimal("5"), Decimal("50")),
            HoldingState("gone", Decimal("3")),
        ],
        oracle,
        [loan],
        payments,
    )


class TestNetWorthCache:
    def test_point_in_time(self, cache):
        point = cache.net_worth_at(date(2024, 1, 31))

        # aapl 10 x 150, msft 5 x 400 x 50%, gone has no price
        assert point.assets == Decimal("2500")
        assert point.liabilities == Decimal("10000")
        assert point.net_worth == Decimal("-7500")
        assert point.missing_prices == ("gone",)

    def test_latest_price_on_or_before(self, cache):
        assert cache.price_at("aapl", date(2024, 3, 10)) == Decimal("180")

    def test_falls_back_to_current_price(self, cache):
        assert cache.price_at("aapl", date(2023, 6, 1)) == Decimal("200")

    def test_immutable(self, cache):
        with pytest.raises(Exception):
            cache.holdings = ()
        with pytest.raises(TypeError):
            cache.current_prices["aapl"] = Decimal("1")
        with pytest.raises(TypeError):
            cache.payments["other"] = ()

    def test_payments_are_required(self):
        with pytest.raises(TypeError):
            NetWorthCache(
                portfolio_id="p1",
                holdings=(),
                current_prices=MappingProxyType({}),
                histories=MappingProxyType({}),
                liabilities=(),
            )


class TestNetWorthWithDatabase:
    @pytest.fixture
    def household(self, manager, portfolio):
        manager.add_asset("VTI", current_price="250")
        manager.record_price("VTI", date(2024, 1, 31), "220")
        manager.add_transaction("Retirement", "VTI", "buy", date(2024, 1, 2), "100", "215")
        loan = manager.add_liability("Retirement", "Mortgage", "20000", date(2023, 1, 1))
        manager.record_liability_payment(loan.id, date(2024, 2, 1), "1000", "80")
        return portfolio

    def test_net_worth_at_date(self, household):
        point = net_worth_at_date("Retirement", date(2024, 1, 31))

        assert point.assets == Decimal("22000")
        assert point.liabilities == Decimal("20000")
        assert point.net_worth == Decimal("2000")

    def test_history_one_point_per_month(self, household):
        points = get_net_worth_history("Retirement", date(2024, 1, 1), date(2024, 2, 10))

        assert [p.date for p in points] == [date(2024, 1, 31), date(2024, 2, 29)]
        assert points[1].liabilities == Decimal("19000")
        assert points[1].assets == Decimal("22000")

    def test_custom_oracle(self, manager, household):
        asset_id = manager.get_asset("VTI").id
        oracle = StaticPriceOracle(current={asset_id: "300"})

        point = net_worth_at_date("Retirement", "2024-06-30", oracle=oracle)

        assert point.assets == Decimal("30000")
