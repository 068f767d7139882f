"""
Portfolio management for the transaction ledger and derived holdings.

Provides:
- Portfolio and asset records, current prices and price history
- Transaction add/edit/delete, each followed by a holding rebuild in the
  same database transaction
- Holdings and tax lots rebuilt from the full history of each
  (portfolio, asset) pair (FIFO/LIFO/specific lot)
- Ownership percentage per holding, preserved across rebuilds
- Liabilities and their append-only payment log

Holdings are derived data. A rebuild replays the ledger in memory first and
only then replaces the stored holding, its lots and its dispositions; if the
replay fails (oversell, unknown lot) the session rolls back and the previous
holding stays as it was.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Union

from sqlalchemy import func
from sqlmodel import Session, select

from ledgerfolio.config import config
from ledgerfolio.core.exceptions import (
    AssetNotFoundError,
    HoldingNotFoundError,
    LedgerIntegrityError,
    LiabilityNotFoundError,
    PortfolioNotFoundError,
    TransactionNotFoundError,
)
from ledgerfolio.core.planning.liabilities import validate_payment
from ledgerfolio.core.portfolio.lots import (
    Disposition,
    HoldingValuation,
    Lot,
    build_holding,
    replay_lots,
)
from ledgerfolio.core.types import (
    HUNDRED,
    ZERO,
    CostBasisMethod,
    LedgerEvent,
    Numeric,
    PaymentEvent,
    TransactionMetadata,
    sort_events,
    to_date,
    to_decimal,
)
from ledgerfolio.db.database import get_session
from ledgerfolio.db.models import Asset, Portfolio, PriceHistory, new_id
from ledgerfolio.db.portfolio_models import (
    Holding,
    Liability,
    LiabilityPayment,
    LotDisposition,
    TaxLot,
    Transaction,
)

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str]


def _validate_symbol(symbol: str) -> str:
    symbol = (symbol or "").strip().upper()
    if not symbol or len(symbol) > 20:
        raise ValueError(f"Invalid asset symbol: {symbol!r}")
    return symbol


@dataclass
class HoldingDetail:
    """Holding with its open lots, detached from the session."""

    asset_id: str
    symbol: str
    quantity: Decimal
    cost_basis: Decimal
    average_cost: Decimal
    current_price: Optional[Decimal]
    current_value: Decimal
    unrealized_gain: Decimal
    unrealized_gain_percent: Decimal
    ownership_percentage: Decimal
    lots: list[Lot] = field(default_factory=list)


@dataclass
class TransactionChange:
    """Old and new versions of an edited transaction."""

    before: LedgerEvent
    after: LedgerEvent


# ============================================================================
# Session-level helpers (shared with the valuation services)
# ============================================================================


def resolve_portfolio(session: Session, ref: str) -> Portfolio:
    """Find a portfolio by id or by name."""
    portfolio = session.get(Portfolio, ref)
    if portfolio is None:
        portfolio = session.exec(select(Portfolio).where(Portfolio.name == ref)).first()
    if portfolio is None:
        raise PortfolioNotFoundError(ref)
    return portfolio


def load_events(
    session: Session, portfolio_id: str, asset_id: Optional[str] = None
) -> list[LedgerEvent]:
    """All ledger events of a portfolio (optionally one asset), in replay order."""
    statement = select(Transaction).where(Transaction.portfolio_id == portfolio_id)
    if asset_id is not None:
        statement = statement.where(Transaction.asset_id == asset_id)
    rows = session.exec(statement).all()
    return sort_events([row.to_event() for row in rows])


def load_payments(session: Session, liability_id: str) -> list[PaymentEvent]:
    rows = session.exec(
        select(LiabilityPayment)
        .where(LiabilityPayment.liability_id == liability_id)
        .order_by(LiabilityPayment.payment_date, LiabilityPayment.id)
    ).all()
    return [row.to_event() for row in rows]


def _lot_from_row(row: TaxLot, asset_id: str) -> Lot:
    return Lot(
        id=row.id,
        asset_id=asset_id,
        opening_transaction_id=row.opening_transaction_id,
        purchase_date=row.purchase_date,
        purchase_price=row.purchase_price,
        original_quantity=row.quantity_original,
        remaining_quantity=row.quantity_remaining,
        plan=row.plan,
        notes=row.notes,
    )


def _disposition_from_row(row: LotDisposition) -> Disposition:
    return Disposition(
        lot_id=row.lot_id,
        asset_id=row.asset_id,
        disposal_transaction_id=row.disposal_transaction_id,
        disposed_date=row.disposed_date,
        quantity=row.quantity_disposed,
        proceeds_per_unit=row.proceeds_per_unit,
        cost_basis_per_unit=row.cost_basis_per_unit,
        is_long_term=row.is_long_term,
    )


class PortfolioManager:
    """
    Manages the transaction ledger, derived holdings and liabilities.

    Every mutation of the ledger re-derives the affected holding inside the
    same database transaction.
    """

    def __init__(self, cost_basis_method: Optional[Union[str, CostBasisMethod]] = None):
        self.cost_basis_method = CostBasisMethod.parse(
            cost_basis_method or config.cost_basis_method
        )

    # ========================================================================
    # Portfolios and assets
    # ========================================================================

    def create_portfolio(self, name: str, base_currency: str = "USD") -> Portfolio:
        name = (name or "").strip()
        if not name:
            raise ValueError("Portfolio name is required")

        with get_session() as session:
            existing = session.exec(select(Portfolio).where(Portfolio.name == name)).first()
            if existing:
                raise ValueError(f"Portfolio {name!r} already exists")

            portfolio = Portfolio(name=name, base_currency=base_currency.upper())
            session.add(portfolio)
            session.flush()
            session.refresh(portfolio)
            session.expunge(portfolio)
            logger.info("Created portfolio %s (%s)", name, portfolio.id)
            return portfolio

    def list_portfolios(self) -> list[Portfolio]:
        with get_session() as session:
            portfolios = list(session.exec(select(Portfolio).order_by(Portfolio.name)).all())
            for portfolio in portfolios:
                session.expunge(portfolio)
            return portfolios

    def get_portfolio(self, ref: str) -> Portfolio:
        with get_session() as session:
            portfolio = resolve_portfolio(session, ref)
            session.expunge(portfolio)
            return portfolio

    def add_asset(
        self,
        symbol: str,
        name: Optional[str] = None,
        current_price: Optional[Numeric] = None,
        asset_type: str = "stock",
    ) -> Asset:
        """Create an asset, or update name/price of an existing one."""
        symbol = _validate_symbol(symbol)
        price = to_decimal(current_price, "current_price") if current_price is not None else None

        with get_session() as session:
            asset = session.exec(select(Asset).where(Asset.symbol == symbol)).first()
            if asset is None:
                asset = Asset(symbol=symbol, name=name, current_price=price, asset_type=asset_type)
                session.add(asset)
            else:
                if name:
                    asset.name = name
                if price is not None:
                    asset.current_price = price
                    asset.updated_at = datetime.now(timezone.utc)
            session.flush()
            if price is not None:
                self._revalue_asset(session, asset)
            session.refresh(asset)
            session.expunge(asset)
            return asset

    def get_asset(self, symbol: str) -> Asset:
        symbol = _validate_symbol(symbol)
        with get_session() as session:
            asset = self._get_asset(session, symbol)
            session.expunge(asset)
            return asset

    def set_current_price(self, symbol: str, price: Numeric) -> Asset:
        """Update an asset's current price and revalue the holdings that own it."""
        value = to_decimal(price, "current_price")
        if value < 0:
            raise ValueError("Price cannot be negative")

        with get_session() as session:
            asset = self._get_asset(session, _validate_symbol(symbol))
            asset.current_price = value
            asset.updated_at = datetime.now(timezone.utc)
            self._revalue_asset(session, asset)
            session.flush()
            session.expunge(asset)
            return asset

    def record_price(self, symbol: str, price_date: DateLike, close: Numeric) -> PriceHistory:
        """Record (or overwrite) the closing price of an asset on a date."""
        value = to_decimal(close, "close")
        if value < 0:
            raise ValueError("Price cannot be negative")
        day = to_date(price_date)

        with get_session() as session:
            asset = self._get_asset(session, _validate_symbol(symbol))
            row = session.exec(
                select(PriceHistory).where(
                    PriceHistory.asset_id == asset.id,
                    PriceHistory.price_date == day,
                )
            ).first()
            if row is None:
                row = PriceHistory(asset_id=asset.id, price_date=day, close=value)
                session.add(row)
            else:
                row.close = value
            session.flush()
            session.refresh(row)
            session.expunge(row)
            return row

    def _get_asset(self, session: Session, symbol: str) -> Asset:
        asset = session.exec(select(Asset).where(Asset.symbol == symbol)).first()
        if asset is None:
            raise AssetNotFoundError(symbol)
        return asset

    def _get_or_create_asset(self, session: Session, symbol: str) -> Asset:
        asset = session.exec(select(Asset).where(Asset.symbol == symbol)).first()
        if asset is None:
            asset = Asset(symbol=symbol)
            session.add(asset)
            session.flush()
            logger.info("Created asset %s", symbol)
        return asset

    # ========================================================================
    # Transactions
    # ========================================================================

    def add_transaction(
        self,
        portfolio: str,
        symbol: str,
        transaction_type: str,
        transaction_date: DateLike,
        quantity: Numeric,
        price: Numeric = 0,
        fees: Numeric = 0,
        total_amount: Optional[Numeric] = None,
        currency: str = "USD",
        metadata: Optional[TransactionMetadata] = None,
    ) -> LedgerEvent:
        """
        Append a transaction and rebuild the affected holding.

        Raises:
            OversellError: If the new history disposes more than is held.
                Nothing is stored in that case.
        """
        with get_session() as session:
            portfolio_row = resolve_portfolio(session, portfolio)
            asset = self._get_or_create_asset(session, _validate_symbol(symbol))

            event = LedgerEvent.create(
                id=new_id(),
                portfolio_id=portfolio_row.id,
                asset_id=asset.id,
                type=transaction_type,
                date=transaction_date,
                quantity=quantity,
                price=price,
                fees=fees,
                total_amount=total_amount,
                currency=currency.upper(),
                metadata=metadata,
                sequence=self._next_sequence(session, portfolio_row.id),
            )
            session.add(Transaction.from_event(event))
            session.flush()

            self._rebuild_holding(session, portfolio_row.id, asset.id)
            logger.info(
                "Added %s %s %s on %s", event.type.value, event.quantity, asset.symbol, event.date
            )
            return event

    def edit_transaction(self, transaction_id: str, **changes: Any) -> TransactionChange:
        """
        Replace a transaction with an edited copy under the same id.

        Accepted changes: type, date, quantity, price, fees, total_amount,
        currency, metadata, symbol. When quantity, price or fees change and
        total_amount is not given, the total is recomputed.
        """
        allowed = {
            "type", "date", "quantity", "price", "fees",
            "total_amount", "currency", "metadata", "symbol",
        }
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Cannot edit transaction fields: {', '.join(sorted(unknown))}")

        with get_session() as session:
            row = session.get(Transaction, transaction_id)
            if row is None:
                raise TransactionNotFoundError(transaction_id)
            before = row.to_event()

            asset_id = before.asset_id
            if changes.get("symbol"):
                asset_id = self._get_or_create_asset(
                    session, _validate_symbol(changes["symbol"])
                ).id

            amounts_changed = any(k in changes for k in ("type", "quantity", "price", "fees"))
            total_amount = changes.get("total_amount")
            if total_amount is None and not amounts_changed:
                total_amount = before.total_amount

            after = LedgerEvent.create(
                id=before.id,
                portfolio_id=before.portfolio_id,
                asset_id=asset_id,
                type=changes.get("type", before.type),
                date=changes.get("date", before.date),
                quantity=changes.get("quantity", before.quantity),
                price=changes.get("price", before.price),
                fees=changes.get("fees", before.fees),
                total_amount=total_amount,
                currency=changes.get("currency", before.currency),
                metadata=changes.get("metadata", before.metadata),
                sequence=before.sequence,
            )

            replacement = Transaction.from_event(after)
            row.asset_id = replacement.asset_id
            row.transaction_type = replacement.transaction_type
            row.transaction_date = replacement.transaction_date
            row.quantity = replacement.quantity
            row.price = replacement.price
            row.fees = replacement.fees
            row.total_amount = replacement.total_amount
            row.currency = replacement.currency
            row.metadata_json = replacement.metadata_json
            session.flush()

            # Old asset first so its lot ids are released before reuse
            for affected in dict.fromkeys([before.asset_id, after.asset_id]):
                self._rebuild_holding(session, before.portfolio_id, affected)

            logger.info("Edited transaction %s", transaction_id)
            return TransactionChange(before=before, after=after)

    def delete_transaction(self, transaction_id: str) -> LedgerEvent:
        """Remove a transaction from the log and rebuild its holding."""
        with get_session() as session:
            row = session.get(Transaction, transaction_id)
            if row is None:
                raise TransactionNotFoundError(transaction_id)
            event = row.to_event()
            session.delete(row)
            session.flush()

            self._rebuild_holding(session, event.portfolio_id, event.asset_id)
            logger.info("Deleted transaction %s", transaction_id)
            return event

    def get_transaction(self, transaction_id: str) -> LedgerEvent:
        with get_session() as session:
            row = session.get(Transaction, transaction_id)
            if row is None:
                raise TransactionNotFoundError(transaction_id)
            return row.to_event()

    def list_transactions(
        self, portfolio: str, symbol: Optional[str] = None
    ) -> list[LedgerEvent]:
        with get_session() as session:
            portfolio_row = resolve_portfolio(session, portfolio)
            asset_id = self._get_asset(session, _validate_symbol(symbol)).id if symbol else None
            return load_events(session, portfolio_row.id, asset_id)

    def _next_sequence(self, session: Session, portfolio_id: str) -> int:
        current = session.exec(
            select(func.max(Transaction.sequence)).where(Transaction.portfolio_id == portfolio_id)
        ).one()
        return (current or 0) + 1

    # ========================================================================
    # Holdings
    # ========================================================================

    def recompute_holdings(self, portfolio: str) -> list[HoldingValuation]:
        """
        Rebuild every holding of a portfolio from its transaction log.

        Holdings without any remaining transactions are removed. All holdings
        are replaced in one database transaction.
        """
        with get_session() as session:
            portfolio_row = resolve_portfolio(session, portfolio)

            asset_ids = set(
                session.exec(
                    select(Transaction.asset_id).where(Transaction.portfolio_id == portfolio_row.id)
                ).all()
            )
            asset_ids |= set(
                session.exec(
                    select(Holding.asset_id).where(Holding.portfolio_id == portfolio_row.id)
                ).all()
            )

            results = []
            for asset_id in sorted(asset_ids):
                valuation = self._rebuild_holding(session, portfolio_row.id, asset_id)
                if not valuation.is_closed:
                    results.append(valuation)

            logger.info(
                "Recomputed %d holdings for portfolio %s", len(results), portfolio_row.name
            )
            return results

    def _rebuild_holding(
        self, session: Session, portfolio_id: str, asset_id: str
    ) -> HoldingValuation:
        """Replace the stored holding of one pair with a fresh replay."""
        events = load_events(session, portfolio_id, asset_id)
        asset = session.get(Asset, asset_id)

        holding = session.exec(
            select(Holding).where(
                Holding.portfolio_id == portfolio_id,
                Holding.asset_id == asset_id,
            )
        ).first()
        ownership = holding.ownership_percentage if holding else HUNDRED

        # Replay before touching stored rows; failures leave them intact
        book = replay_lots(events, asset_id, self.cost_basis_method)
        valuation = build_holding(book, asset.current_price if asset else None, ownership)

        for old in session.exec(
            select(LotDisposition).where(
                LotDisposition.portfolio_id == portfolio_id,
                LotDisposition.asset_id == asset_id,
            )
        ).all():
            session.delete(old)
        for disposition in valuation.dispositions:
            session.add(
                LotDisposition(
                    portfolio_id=portfolio_id,
                    asset_id=asset_id,
                    lot_id=disposition.lot_id,
                    disposal_transaction_id=disposition.disposal_transaction_id,
                    quantity_disposed=disposition.quantity,
                    proceeds_per_unit=disposition.proceeds_per_unit,
                    cost_basis_per_unit=disposition.cost_basis_per_unit,
                    realized_gain=disposition.realized_gain,
                    is_long_term=disposition.is_long_term,
                    disposed_date=disposition.disposed_date,
                )
            )

        if holding is not None:
            for lot in session.exec(select(TaxLot).where(TaxLot.holding_id == holding.id)).all():
                session.delete(lot)
            session.flush()

        if valuation.is_closed:
            if holding is not None:
                session.delete(holding)
                session.flush()
            return valuation

        if holding is None:
            holding = Holding(portfolio_id=portfolio_id, asset_id=asset_id)
            session.add(holding)

        holding.quantity = valuation.quantity
        holding.cost_basis = valuation.cost_basis
        holding.average_cost = valuation.average_cost
        holding.current_value = valuation.current_value
        holding.unrealized_gain = valuation.unrealized_gain
        holding.unrealized_gain_percent = valuation.unrealized_gain_percent
        holding.ownership_percentage = valuation.ownership_percentage
        holding.updated_at = datetime.now(timezone.utc)
        session.flush()

        for lot in valuation.lots:
            plan = lot.plan
            session.add(
                TaxLot(
                    id=lot.id,
                    holding_id=holding.id,
                    opening_transaction_id=lot.opening_transaction_id,
                    purchase_date=lot.purchase_date,
                    purchase_price=lot.purchase_price,
                    quantity_original=lot.original_quantity,
                    quantity_remaining=lot.remaining_quantity,
                    notes=lot.notes,
                    plan_type=plan.plan_type if plan else None,
                    grant_date=plan.grant_date if plan else None,
                    vesting_date=plan.vesting_date if plan else None,
                    discount_percent=plan.discount_percent if plan else None,
                    withheld_shares=plan.withheld_shares if plan else None,
                    bargain_element=plan.bargain_element if plan else None,
                )
            )
        session.flush()
        return valuation

    def _revalue_asset(self, session: Session, asset: Asset) -> None:
        """Refresh value columns of every holding of an asset after a price change."""
        price = asset.current_price if asset.current_price is not None else ZERO
        for holding in session.exec(select(Holding).where(Holding.asset_id == asset.id)).all():
            holding.current_value = holding.quantity * price * holding.ownership_percentage / HUNDRED
            holding.unrealized_gain = holding.current_value - holding.cost_basis
            holding.unrealized_gain_percent = (
                holding.unrealized_gain / holding.cost_basis * HUNDRED
                if holding.cost_basis != 0
                else ZERO
            )
            holding.updated_at = datetime.now(timezone.utc)

    def set_ownership_percentage(
        self, portfolio: str, symbol: str, percentage: Numeric
    ) -> HoldingDetail:
        """Set the share of a holding attributed to this portfolio, in (0, 100]."""
        value = to_decimal(percentage, "ownership_percentage")
        if value <= 0 or value > HUNDRED:
            raise LedgerIntegrityError(f"Ownership percentage must be in (0, 100], got {value}")

        with get_session() as session:
            portfolio_row = resolve_portfolio(session, portfolio)
            asset = self._get_asset(session, _validate_symbol(symbol))
            holding = session.exec(
                select(Holding).where(
                    Holding.portfolio_id == portfolio_row.id,
                    Holding.asset_id == asset.id,
                )
            ).first()
            if holding is None:
                raise HoldingNotFoundError(f"{portfolio_row.name}/{asset.symbol}")

            holding.ownership_percentage = value
            self._revalue_asset(session, asset)
            session.flush()
            return self._detail(session, holding, asset)

    def get_holdings(self, portfolio: str) -> list[HoldingDetail]:
        """Stored holdings of a portfolio with their lots, largest value first."""
        with get_session() as session:
            portfolio_row = resolve_portfolio(session, portfolio)
            pairs = session.exec(
                select(Holding, Asset)
                .join(Asset, Holding.asset_id == Asset.id)
                .where(Holding.portfolio_id == portfolio_row.id)
            ).all()
            results = [self._detail(session, holding, asset) for holding, asset in pairs]
            results.sort(key=lambda h: (-h.current_value, h.symbol))
            return results

    def get_lots(self, portfolio: str, symbol: str) -> list[Lot]:
        with get_session() as session:
            portfolio_row = resolve_portfolio(session, portfolio)
            asset = self._get_asset(session, _validate_symbol(symbol))
            holding = session.exec(
                select(Holding).where(
                    Holding.portfolio_id == portfolio_row.id,
                    Holding.asset_id == asset.id,
                )
            ).first()
            if holding is None:
                return []
            return self._detail(session, holding, asset).lots

    def get_dispositions(self, portfolio: str, symbol: Optional[str] = None) -> list[Disposition]:
        """Realized lot slices, in disposal order."""
        with get_session() as session:
            portfolio_row = resolve_portfolio(session, portfolio)
            statement = select(LotDisposition).where(
                LotDisposition.portfolio_id == portfolio_row.id
            )
            if symbol:
                asset = self._get_asset(session, _validate_symbol(symbol))
                statement = statement.where(LotDisposition.asset_id == asset.id)
            rows = session.exec(
                statement.order_by(LotDisposition.disposed_date, LotDisposition.id)
            ).all()
            return [_disposition_from_row(row) for row in rows]

    def _detail(self, session: Session, holding: Holding, asset: Asset) -> HoldingDetail:
        lots = session.exec(select(TaxLot).where(TaxLot.holding_id == holding.id)).all()
        ordered = sorted(
            (_lot_from_row(lot, asset.id) for lot in lots),
            key=lambda lot: (lot.purchase_date, lot.id),
        )
        return HoldingDetail(
            asset_id=asset.id,
            symbol=asset.symbol,
            quantity=holding.quantity,
            cost_basis=holding.cost_basis,
            average_cost=holding.average_cost,
            current_price=asset.current_price,
            current_value=holding.current_value,
            unrealized_gain=holding.unrealized_gain,
            unrealized_gain_percent=holding.unrealized_gain_percent,
            ownership_percentage=holding.ownership_percentage,
            lots=ordered,
        )

    # ========================================================================
    # Liabilities
    # ========================================================================

    def add_liability(
        self,
        portfolio: str,
        name: str,
        balance: Numeric,
        start_date: DateLike,
        interest_rate: Numeric = 0,
        payment: Numeric = 0,
        term_months: Optional[int] = None,
        liability_type: str = "loan",
    ) -> Liability:
        current = to_decimal(balance, "balance")
        if current < 0:
            raise LedgerIntegrityError("Liability balance cannot be negative")

        with get_session() as session:
            portfolio_row = resolve_portfolio(session, portfolio)
            liability = Liability(
                portfolio_id=portfolio_row.id,
                name=name,
                liability_type=liability_type,
                balance=current,
                original_amount=current,
                interest_rate=to_decimal(interest_rate, "interest_rate"),
                payment=to_decimal(payment, "payment"),
                start_date=to_date(start_date),
                term_months=term_months,
            )
            session.add(liability)
            session.flush()
            session.refresh(liability)
            session.expunge(liability)
            logger.info("Added liability %s (%s) to %s", name, current, portfolio_row.name)
            return liability

    def list_liabilities(self, portfolio: str) -> list[Liability]:
        with get_session() as session:
            portfolio_row = resolve_portfolio(session, portfolio)
            rows = list(
                session.exec(
                    select(Liability)
                    .where(Liability.portfolio_id == portfolio_row.id)
                    .order_by(Liability.name)
                ).all()
            )
            for row in rows:
                session.expunge(row)
            return rows

    def get_liability(self, liability_id: str) -> Liability:
        with get_session() as session:
            liability = session.get(Liability, liability_id)
            if liability is None:
                raise LiabilityNotFoundError(liability_id)
            session.expunge(liability)
            return liability

    def record_liability_payment(
        self,
        liability_id: str,
        payment_date: DateLike,
        principal: Numeric,
        interest: Numeric = 0,
    ) -> PaymentEvent:
        """
        Append a payment and move the liability's current balance.

        Raises:
            LiabilityNotFoundError: Unknown liability.
            InvalidPaymentError: The payment fails validation.
        """
        day = to_date(payment_date)
        with get_session() as session:
            liability = session.get(Liability, liability_id)
            if liability is None:
                raise LiabilityNotFoundError(liability_id)

            latest = session.exec(
                select(func.max(LiabilityPayment.payment_date)).where(
                    LiabilityPayment.liability_id == liability.id
                )
            ).one()
            principal_paid, interest_paid = validate_payment(
                liability.balance,
                liability.start_date,
                day,
                principal,
                interest,
                latest_payment_date=latest,
            )
            remaining = liability.balance - principal_paid

            row = LiabilityPayment(
                liability_id=liability.id,
                payment_date=day,
                principal_paid=principal_paid,
                interest_paid=interest_paid,
                remaining_balance=remaining,
            )
            session.add(row)
            liability.balance = remaining
            liability.updated_at = datetime.now(timezone.utc)
            session.flush()

            logger.info(
                "Recorded payment of %s principal on %s; balance now %s",
                principal_paid,
                liability.name,
                remaining,
            )
            return row.to_event()

    def get_liability_payments(self, liability_id: str) -> list[PaymentEvent]:
        with get_session() as session:
            if session.get(Liability, liability_id) is None:
                raise LiabilityNotFoundError(liability_id)
            return load_payments(session, liability_id)
