"""Tests for PortfolioManager ledger operations and derived holdings."""

from datetime import date
from decimal import Decimal

import pytest
from sqlmodel import select

from ledgerfolio.core.exceptions import (
    AssetNotFoundError,
    HoldingNotFoundError,
    InvalidPaymentError,
    LedgerIntegrityError,
    LiabilityNotFoundError,
    OversellError,
    PortfolioNotFoundError,
    TransactionNotFoundError,
    UnknownTransactionTypeError,
)
from ledgerfolio.core.planning.liabilities import balance_at_date, liability_balance_history
from ledgerfolio.core.portfolio.manager import PortfolioManager
from ledgerfolio.core.types import CostBasisMethod, PlanMetadata, TransactionMetadata, TransactionType
from ledgerfolio.db.database import get_session
from ledgerfolio.db.portfolio_models import Holding, TaxLot, Transaction


@pytest.fixture
def holding_aapl(manager, portfolio):
    """Two AAPL buys, priced at 150."""
    manager.add_asset("AAPL", name="Apple Inc.", current_price="150")
    first = manager.add_transaction("Retirement", "AAPL", "buy", "2024-01-02", "10", "100", fees="5")
    second = manager.add_transaction("Retirement", "AAPL", "buy", "2024-02-01", "10", "120")
    return first, second


class TestPortfolios:
    def test_create_and_resolve_by_name_or_id(self, manager):
        created = manager.create_portfolio("Taxable", base_currency="eur")

        assert created.base_currency == "EUR"
        assert manager.get_portfolio("Taxable").id == created.id
        assert manager.get_portfolio(created.id).name == "Taxable"

    def test_duplicate_name(self, manager, portfolio):
        with pytest.raises(ValueError):
            manager.create_portfolio("Retirement")

    def test_blank_name(self, manager):
        with pytest.raises(ValueError):
            manager.create_portfolio("  ")

    def test_unknown_portfolio(self, manager):
        with pytest.raises(PortfolioNotFoundError):
            manager.get_portfolio("nope")

    def test_list_sorted(self, manager):
        manager.create_portfolio("b")
        manager.create_portfolio("a")
        assert [p.name for p in manager.list_portfolios()] == ["a", "b"]


class TestAssets:
    def test_symbol_normalized(self, manager):
        asset = manager.add_asset(" vti ")
        assert asset.symbol == "VTI"

    def test_invalid_symbol(self, manager):
        with pytest.raises(ValueError):
            manager.add_asset("")

    def test_unknown_asset(self, manager):
        with pytest.raises(AssetNotFoundError):
            manager.get_asset("ZZZ")

    def test_negative_price(self, manager):
        manager.add_asset("VTI")
        with pytest.raises(ValueError):
            manager.set_current_price("VTI", "-1")

    def test_record_price_upserts(self, manager):
        manager.add_asset("VTI")
        manager.record_price("VTI", date(2024, 1, 2), "220")
        row = manager.record_price("VTI", date(2024, 1, 2), "221.5")
        assert row.close == Decimal("221.5")


class TestAddTransaction:
    def test_creates_holding_and_lots(self, manager, holding_aapl):
        holdings = manager.get_holdings("Retirement")

        assert len(holdings) == 1
        h = holdings[0]
        assert h.symbol == "AAPL"
        assert h.quantity == Decimal("20")
        assert h.cost_basis == Decimal("2200")
        assert h.average_cost == Decimal("110")
        assert h.current_value == Decimal("3000")
        assert h.unrealized_gain == Decimal("800")
        assert [lot.id for lot in h.lots] == [f"lot-{holding_aapl[0].id}", f"lot-{holding_aapl[1].id}"]

    def test_creates_unknown_asset(self, manager, portfolio):
        manager.add_transaction("Retirement", "NEW", "buy", "2024-01-02", "1", "10")
        assert manager.get_asset("NEW").current_price is None

    def test_sequences_increase(self, manager, holding_aapl):
        first, second = holding_aapl
        assert second.sequence == first.sequence + 1

    def test_unknown_type(self, manager, portfolio):
        with pytest.raises(UnknownTransactionTypeError):
            manager.add_transaction("Retirement", "AAPL", "gift", "2024-01-02", "1", "10")

    def test_oversell_stores_nothing(self, manager, holding_aapl):
        with pytest.raises(OversellError):
            manager.add_transaction("Retirement", "AAPL", "sell", "2024-03-01", "25", "130")

        assert len(manager.list_transactions("Retirement")) == 2
        assert manager.get_holdings("Retirement")[0].quantity == Decimal("20")

    def test_sell_records_dispositions(self, manager, holding_aapl):
        manager.add_transaction("Retirement", "AAPL", "sell", "2024-03-01", "15", "130", fees="15")

        dispositions = manager.get_dispositions("Retirement", "AAPL")

        assert [d.quantity for d in dispositions] == [Decimal("10"), Decimal("5")]
        # Net proceeds 129/share: 10 x 29 + 5 x 9
        assert sum(d.realized_gain for d in dispositions) == Decimal("335")

    def test_specific_lot_sale(self, manager, holding_aapl):
        _, second = holding_aapl
        manager.add_transaction(
            "Retirement",
            "AAPL",
            "sell",
            "2024-03-01",
            "5",
            "130",
            metadata=TransactionMetadata(tax_lot_id=f"lot-{second.id}"),
        )

        lots = {lot.id: lot.remaining_quantity for lot in manager.get_lots("Retirement", "AAPL")}
        assert lots[f"lot-{second.id}"] == Decimal("5")
        assert lots[f"lot-{holding_aapl[0].id}"] == Decimal("10")

    def test_selling_everything_removes_holding(self, manager, holding_aapl):
        manager.add_transaction("Retirement", "AAPL", "sell", "2024-03-01", "20", "130")

        assert manager.get_holdings("Retirement") == []
        with get_session() as session:
            assert len(session.exec(select(TaxLot)).all()) == 0

    def test_espp_plan_persisted_on_lot(self, manager, portfolio):
        plan = PlanMetadata(
            plan_type="espp",
            grant_date=date(2023, 7, 1),
            discount_percent=Decimal("15"),
            bargain_element=Decimal("12.75"),
        )
        manager.add_transaction(
            "Retirement",
            "ACME",
            TransactionType.ESPP_PURCHASE,
            "2024-01-02",
            "20",
            "72.25",
            metadata=TransactionMetadata(plan=plan),
        )

        lot = manager.get_lots("Retirement", "ACME")[0]
        assert lot.plan == plan

    def test_lifo_manager(self, portfolio):
        manager = PortfolioManager(CostBasisMethod.LIFO)
        manager.add_transaction("Retirement", "AAPL", "buy", "2024-01-02", "10", "100")
        second = manager.add_transaction("Retirement", "AAPL", "buy", "2024-02-01", "10", "120")
        manager.add_transaction("Retirement", "AAPL", "sell", "2024-03-01", "5", "130")

        lots = {lot.id: lot.remaining_quantity for lot in manager.get_lots("Retirement", "AAPL")}
        assert lots[f"lot-{second.id}"] == Decimal("5")


class TestEditAndDelete:
    def test_edit_rebuilds_holding(self, manager, holding_aapl):
        first, _ = holding_aapl

        change = manager.edit_transaction(first.id, quantity="5")

        assert change.before.quantity == Decimal("10")
        assert change.after.quantity == Decimal("5")
        assert change.after.id == first.id
        assert change.after.sequence == first.sequence
        assert change.after.total_amount == Decimal("505")
        assert manager.get_holdings("Retirement")[0].quantity == Decimal("15")

    def test_edit_unknown_field(self, manager, holding_aapl):
        with pytest.raises(ValueError):
            manager.edit_transaction(holding_aapl[0].id, portfolio_id="x")

    def test_edit_that_oversells_is_rolled_back(self, manager, holding_aapl):
        manager.add_transaction("Retirement", "AAPL", "sell", "2024-03-01", "20", "130")
        first, _ = holding_aapl

        with pytest.raises(OversellError):
            manager.edit_transaction(first.id, quantity="5")

        assert manager.get_transaction(first.id).quantity == Decimal("10")

    def test_edit_moves_to_other_symbol(self, manager, holding_aapl):
        first, _ = holding_aapl

        manager.edit_transaction(first.id, symbol="MSFT")

        holdings = {h.symbol: h.quantity for h in manager.get_holdings("Retirement")}
        assert holdings == {"AAPL": Decimal("10"), "MSFT": Decimal("10")}

    def test_delete(self, manager, holding_aapl):
        first, _ = holding_aapl

        deleted = manager.delete_transaction(first.id)

        assert deleted.id == first.id
        assert manager.get_holdings("Retirement")[0].quantity == Decimal("10")
        with pytest.raises(TransactionNotFoundError):
            manager.get_transaction(first.id)

    def test_delete_unknown(self, manager):
        with pytest.raises(TransactionNotFoundError):
            manager.delete_transaction("missing")

    def test_list_transactions_filtered(self, manager, holding_aapl):
        manager.add_transaction("Retirement", "MSFT", "buy", "2024-01-05", "1", "300")
        assert len(manager.list_transactions("Retirement")) == 3
        assert len(manager.list_transactions("Retirement", symbol="MSFT")) == 1


class TestRecompute:
    def test_recompute_matches_incremental(self, manager, holding_aapl):
        before = manager.get_holdings("Retirement")[0]

        results = manager.recompute_holdings("Retirement")

        after = manager.get_holdings("Retirement")[0]
        assert len(results) == 1
        assert (after.quantity, after.cost_basis) == (before.quantity, before.cost_basis)

    def test_recompute_drops_orphan_holdings(self, manager, holding_aapl):
        with get_session() as session:
            for row in session.exec(select(Transaction)).all():
                session.delete(row)

        assert manager.recompute_holdings("Retirement") == []
        with get_session() as session:
            assert len(session.exec(select(Holding)).all()) == 0


class TestValuation:
    def test_price_change_revalues(self, manager, holding_aapl):
        manager.set_current_price("AAPL", "200")

        assert manager.get_holdings("Retirement")[0].current_value == Decimal("4000")

    def test_ownership_percentage(self, manager, holding_aapl):
        detail = manager.set_ownership_percentage("Retirement", "AAPL", "50")

        assert detail.ownership_percentage == Decimal("50")
        assert detail.current_value == Decimal("1500")

    def test_ownership_survives_rebuild(self, manager, holding_aapl):
        manager.set_ownership_percentage("Retirement", "AAPL", "50")
        manager.add_transaction("Retirement", "AAPL", "buy", "2024-03-01", "10", "130")

        h = manager.get_holdings("Retirement")[0]
        assert h.ownership_percentage == Decimal("50")
        assert h.current_value == Decimal("2250")

    @pytest.mark.parametrize("share", ["0", "101"])
    def test_ownership_range(self, manager, holding_aapl, share):
        with pytest.raises(LedgerIntegrityError):
            manager.set_ownership_percentage("Retirement", "AAPL", share)

    def test_ownership_needs_holding(self, manager, holding_aapl):
        manager.add_asset("MSFT")
        with pytest.raises(HoldingNotFoundError):
            manager.set_ownership_percentage("Retirement", "MSFT", "50")

    def test_holdings_sorted_by_value(self, manager, holding_aapl):
        manager.add_asset("MSFT", current_price="400")
        manager.add_transaction("Retirement", "MSFT", "buy", "2024-01-05", "10", "300")
        assert [h.symbol for h in manager.get_holdings("Retirement")] == ["MSFT", "AAPL"]


class TestLiabilities:
    def test_payments_move_balance(self, manager, portfolio):
        loan = manager.add_liability("Retirement", "Car", "10000", date(2024, 1, 1), interest_rate="4.9")

        payment = manager.record_liability_payment(loan.id, date(2024, 2, 1), "400", "40")

        assert payment.remaining_balance == Decimal("9600")
        assert manager.get_liability(loan.id).balance == Decimal("9600")
        assert manager.get_liability(loan.id).original_amount == Decimal("10000")
        assert len(manager.get_liability_payments(loan.id)) == 1

    def test_invalid_payment_not_stored(self, manager, portfolio):
        loan = manager.add_liability("Retirement", "Car", "100", date(2024, 1, 1))

        with pytest.raises(InvalidPaymentError):
            manager.record_liability_payment(loan.id, date(2024, 2, 1), "150")

        assert manager.get_liability_payments(loan.id) == []
        assert manager.get_liability(loan.id).balance == Decimal("100")

    def test_back_dated_payment_rejected(self, manager, portfolio):
        loan = manager.add_liability("Retirement", "Mortgage", "100000", date(2023, 1, 1))
        manager.record_liability_payment(loan.id, date(2024, 1, 1), "500")
        manager.record_liability_payment(loan.id, date(2024, 3, 1), "500")

        with pytest.raises(InvalidPaymentError, match="latest recorded payment"):
            manager.record_liability_payment(loan.id, date(2024, 2, 1), "500")

        payments = manager.get_liability_payments(loan.id)
        liability = manager.get_liability(loan.id)
        assert liability.balance == Decimal("99000")
        history = liability_balance_history(liability, payments, date(2023, 12, 1), date(2024, 4, 1))
        assert [p.balance for p in history] == [
            Decimal("100000"),
            Decimal("99500"),
            Decimal("99000"),
            Decimal("99000"),
        ]
        for point in history:
            assert point.balance == balance_at_date(liability, payments, point.date)

    def test_negative_balance(self, manager, portfolio):
        with pytest.raises(LedgerIntegrityError):
            manager.add_liability("Retirement", "Card", "-1", date(2024, 1, 1))

    def test_unknown_liability(self, manager):
        with pytest.raises(LiabilityNotFoundError):
            manager.record_liability_payment("missing", date(2024, 2, 1), "1")

    def test_list(self, manager, portfolio):
        manager.add_liability("Retirement", "B loan", "1", date(2024, 1, 1))
        manager.add_liability("Retirement", "A loan", "1", date(2024, 1, 1))
        assert [l.name for l in manager.list_liabilities("Retirement")] == ["A loan", "B loan"]
