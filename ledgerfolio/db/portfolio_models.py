"""
Portfolio database models for Ledgerfolio.

Defines the schema for:
- Transaction: Append-only ledger events (edits replace the row under the same id)
- Holding: Derived position per (portfolio, asset), rebuilt from the ledger
- TaxLot: Open purchase lots owned by a holding
- LotDisposition: Lot slices consumed by a sell or transfer out
- Liability: Loans with a current balance (the ledger head)
- LiabilityPayment: Append-only payment log per liability
- PerformanceSnapshot: One valuation per (portfolio, date) for TWR tracking

All monetary and quantity columns use DecimalString, so values round-trip
through SQLite exactly.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlmodel import Field, Relationship, SQLModel, UniqueConstraint

from ledgerfolio.core.types import (
    HUNDRED,
    ZERO,
    LedgerEvent,
    PaymentEvent,
    PlanMetadata,
    TransactionMetadata,
    TransactionType,
)
from ledgerfolio.db.models import new_id
from ledgerfolio.db.types import DecimalString


class Transaction(SQLModel, table=True):
    """
    Ledger event.

    Never mutated in place: an edit replaces every column of the row while
    keeping its id and sequence, and a delete removes the row from the log.
    """

    __tablename__ = "transactions"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    portfolio_id: str = Field(foreign_key="portfolios.id", index=True, max_length=64)
    asset_id: str = Field(foreign_key="assets.id", index=True, max_length=64)

    # Transaction details
    transaction_type: str = Field(max_length=20)
    transaction_date: date = Field(index=True)
    quantity: Decimal = Field(default=ZERO, sa_type=DecimalString)
    price: Decimal = Field(default=ZERO, sa_type=DecimalString)  # Per unit, excluding fees
    fees: Decimal = Field(default=ZERO, sa_type=DecimalString)
    total_amount: Decimal = Field(default=ZERO, sa_type=DecimalString)
    currency: str = Field(default="USD", max_length=3)

    # Typed variant payload (plan metadata, specific lot id), see TransactionMetadata
    metadata_json: Optional[str] = Field(default=None)

    # Insertion order within the portfolio, breaks same-day ties during replay
    sequence: int = Field(default=0, index=True)

    # Audit timestamp
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def metadata_obj(self) -> TransactionMetadata:
        return TransactionMetadata.from_json(self.metadata_json)

    def to_event(self) -> LedgerEvent:
        """Convert the stored row into the immutable replay event."""
        return LedgerEvent(
            id=self.id,
            portfolio_id=self.portfolio_id,
            asset_id=self.asset_id,
            type=TransactionType.parse(self.transaction_type),
            date=self.transaction_date,
            quantity=self.quantity,
            price=self.price,
            fees=self.fees,
            total_amount=self.total_amount,
            currency=self.currency,
            metadata=self.metadata_obj,
            sequence=self.sequence,
        )

    @classmethod
    def from_event(cls, event: LedgerEvent) -> "Transaction":
        return cls(
            id=event.id,
            portfolio_id=event.portfolio_id,
            asset_id=event.asset_id,
            transaction_type=event.type.value,
            transaction_date=event.date,
            quantity=event.quantity,
            price=event.price,
            fees=event.fees,
            total_amount=event.total_amount,
            currency=event.currency,
            metadata_json=event.metadata.to_json(),
            sequence=event.sequence,
        )


class Holding(SQLModel, table=True):
    """
    Current position for one (portfolio, asset) pair.

    Derived data: rebuilt wholesale from the transaction log whenever the log
    for its pair changes. Only ownership_percentage is user-owned and is
    carried over across rebuilds.
    """

    __tablename__ = "holdings"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "asset_id", name="uq_holding_portfolio_asset"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: str = Field(foreign_key="portfolios.id", index=True, max_length=64)
    asset_id: str = Field(foreign_key="assets.id", index=True, max_length=64)

    # Position
    quantity: Decimal = Field(default=ZERO, sa_type=DecimalString)  # Sum of open lot quantities
    cost_basis: Decimal = Field(default=ZERO, sa_type=DecimalString)  # Sum of remaining * purchase price
    average_cost: Decimal = Field(default=ZERO, sa_type=DecimalString)

    # Valuation at last rebuild
    current_value: Decimal = Field(default=ZERO, sa_type=DecimalString)
    unrealized_gain: Decimal = Field(default=ZERO, sa_type=DecimalString)
    unrealized_gain_percent: Decimal = Field(default=ZERO, sa_type=DecimalString)

    # Share of the position attributed to this portfolio (0, 100]
    ownership_percentage: Decimal = Field(default=HUNDRED, sa_type=DecimalString)

    # Timestamps
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    tax_lots: list["TaxLot"] = Relationship(
        back_populates="holding",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class TaxLot(SQLModel, table=True):
    """
    Open purchase lot.

    Each lot-opening transaction creates one lot whose id is derived from the
    transaction id, so it can be named by a specific-lot disposal and survives
    rebuilds. Invariant: 0 <= quantity_remaining <= quantity_original.
    """

    __tablename__ = "tax_lots"

    id: str = Field(primary_key=True, max_length=80)  # lot-<opening transaction id>
    holding_id: int = Field(foreign_key="holdings.id", index=True)
    opening_transaction_id: str = Field(index=True, max_length=64)

    # Lot details
    purchase_date: date
    purchase_price: Decimal = Field(sa_type=DecimalString)  # Excluding fees
    quantity_original: Decimal = Field(sa_type=DecimalString)
    quantity_remaining: Decimal = Field(sa_type=DecimalString)
    notes: Optional[str] = Field(default=None, max_length=500)

    # Employee stock plan metadata (ESPP purchases, RSU vests)
    plan_type: Optional[str] = Field(default=None, max_length=10)  # espp, rsu
    grant_date: Optional[date] = None
    vesting_date: Optional[date] = None
    discount_percent: Optional[Decimal] = Field(default=None, sa_type=DecimalString)
    withheld_shares: Optional[Decimal] = Field(default=None, sa_type=DecimalString)
    bargain_element: Optional[Decimal] = Field(default=None, sa_type=DecimalString)

    # Relationships
    holding: Optional["Holding"] = Relationship(back_populates="tax_lots")

    @property
    def plan(self) -> Optional[PlanMetadata]:
        if not self.plan_type:
            return None
        return PlanMetadata(
            plan_type=self.plan_type,
            grant_date=self.grant_date,
            vesting_date=self.vesting_date,
            discount_percent=self.discount_percent,
            withheld_shares=self.withheld_shares,
            bargain_element=self.bargain_element,
        )


class LotDisposition(SQLModel, table=True):
    """
    Lot slice consumed by a disposal.

    Records the realized gain/loss and holding period classification for
    each lot consumed during a sale. Rebuilt alongside the holding.
    """

    __tablename__ = "lot_dispositions"

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: str = Field(foreign_key="portfolios.id", index=True, max_length=64)
    asset_id: str = Field(foreign_key="assets.id", index=True, max_length=64)
    lot_id: str = Field(index=True, max_length=80)
    disposal_transaction_id: str = Field(index=True, max_length=64)

    # Disposition details
    quantity_disposed: Decimal = Field(sa_type=DecimalString)
    proceeds_per_unit: Decimal = Field(sa_type=DecimalString)
    cost_basis_per_unit: Decimal = Field(sa_type=DecimalString)  # From the lot
    realized_gain: Decimal = Field(sa_type=DecimalString)

    # Tax classification
    is_long_term: bool = Field(default=False)  # Held >= 365 days
    disposed_date: date


class Liability(SQLModel, table=True):
    """
    Loan or other debt.

    ``balance`` is the current balance. Historical balances are reconstructed
    from it by adding back later principal payments.
    """

    __tablename__ = "liabilities"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    portfolio_id: str = Field(foreign_key="portfolios.id", index=True, max_length=64)
    name: str = Field(max_length=100)
    liability_type: str = Field(default="loan", max_length=20)  # mortgage, auto, student, credit, loan

    balance: Decimal = Field(sa_type=DecimalString)
    original_amount: Optional[Decimal] = Field(default=None, sa_type=DecimalString)
    interest_rate: Decimal = Field(default=ZERO, sa_type=DecimalString)  # Annual, percent
    payment: Decimal = Field(default=ZERO, sa_type=DecimalString)  # Scheduled monthly payment
    start_date: date
    term_months: Optional[int] = None

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LiabilityPayment(SQLModel, table=True):
    """Append-only payment against a liability."""

    __tablename__ = "liability_payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    liability_id: str = Field(foreign_key="liabilities.id", index=True, max_length=64)
    payment_date: date = Field(index=True)
    principal_paid: Decimal = Field(default=ZERO, sa_type=DecimalString)
    interest_paid: Decimal = Field(default=ZERO, sa_type=DecimalString)
    remaining_balance: Decimal = Field(sa_type=DecimalString)  # Balance right after this payment

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_event(self) -> PaymentEvent:
        return PaymentEvent(
            liability_id=self.liability_id,
            date=self.payment_date,
            principal_paid=self.principal_paid,
            interest_paid=self.interest_paid,
            remaining_balance=self.remaining_balance,
        )


class PerformanceSnapshot(SQLModel, table=True):
    """
    Portfolio valuation on one date.

    Exactly one row per (portfolio, date); recomputation upserts by date.
    """

    __tablename__ = "performance_snapshots"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "snapshot_date", name="uq_snapshot_portfolio_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: str = Field(foreign_key="portfolios.id", index=True, max_length=64)
    snapshot_date: date = Field(index=True)

    # Portfolio totals
    total_value: Decimal = Field(default=ZERO, sa_type=DecimalString)
    total_cost: Decimal = Field(default=ZERO, sa_type=DecimalString)

    # Returns
    day_change: Decimal = Field(default=ZERO, sa_type=DecimalString)
    day_change_percent: Decimal = Field(default=ZERO, sa_type=DecimalString)
    cumulative_return: Decimal = Field(default=ZERO, sa_type=DecimalString)  # value(t) - value(t0)
    twr_return: Decimal = Field(default=ZERO, sa_type=DecimalString)  # Fraction, chained daily
    net_contribution: Decimal = Field(default=ZERO, sa_type=DecimalString)  # External flow on this date

    # Holdings summary
    holding_count: int = Field(default=0)
    has_interpolated_prices: bool = Field(default=False)

    computed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
