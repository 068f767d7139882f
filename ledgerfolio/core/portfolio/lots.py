"""
Tax lot replay.

Pure functions and an in-memory lot book that rebuild a holding from the
transaction history of one (portfolio, asset) pair. Nothing here touches the
database; PortfolioManager persists the results and the snapshot service
replays day by day.

Rules:
- Lot-opening events (buy, espp_purchase, rsu_vest, transfer_in,
  reinvestment) open one lot each, priced at the event price excluding fees.
- Disposals (sell, transfer_out) consume lots FIFO, LIFO or by a named lot.
  Asking for more than is open raises OversellError; nothing is clamped.
- Splits scale lot quantities by the ratio and divide the purchase price by
  it, so each lot keeps its cost total.
- Spinoffs and mergers are not modelled and leave lots unchanged.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from ledgerfolio.core.exceptions import (
    LedgerIntegrityError,
    LotNotFoundError,
    OversellError,
)
from ledgerfolio.core.types import (
    HUNDRED,
    ZERO,
    CostBasisMethod,
    LedgerEvent,
    PlanMetadata,
    TransactionType,
    sort_events,
)

logger = logging.getLogger(__name__)

LONG_TERM_DAYS = 365


def lot_id_for(transaction_id: str) -> str:
    """Deterministic lot id for the lot opened by a transaction."""
    return f"lot-{transaction_id}"


def is_long_term(purchase_date: date, as_of: date) -> bool:
    return (as_of - purchase_date).days >= LONG_TERM_DAYS


@dataclass
class Lot:
    """Open purchase lot inside a LotBook."""

    id: str
    asset_id: str
    opening_transaction_id: str
    purchase_date: date
    purchase_price: Decimal
    original_quantity: Decimal
    remaining_quantity: Decimal
    sequence: int = 0
    plan: Optional[PlanMetadata] = None
    notes: Optional[str] = None

    @property
    def cost_basis(self) -> Decimal:
        return self.remaining_quantity * self.purchase_price


@dataclass(frozen=True)
class Disposition:
    """Slice of a lot consumed by a disposal."""

    lot_id: str
    asset_id: str
    disposal_transaction_id: str
    disposed_date: date
    quantity: Decimal
    proceeds_per_unit: Decimal  # Net of the fee share
    cost_basis_per_unit: Decimal
    is_long_term: bool

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.cost_basis_per_unit

    @property
    def proceeds(self) -> Decimal:
        return self.quantity * self.proceeds_per_unit

    @property
    def realized_gain(self) -> Decimal:
        return self.proceeds - self.cost_basis


class LotBook:
    """
    Open lots for one asset, mutated by applying events in date order.

    Example:
        book = LotBook("aapl")
        for event in sort_events(events):
            book.apply(event)
        book.quantity  # == sum of open lot remaining quantities
    """

    def __init__(
        self,
        asset_id: str,
        default_method: CostBasisMethod = CostBasisMethod.FIFO,
    ):
        self.asset_id = asset_id
        self.default_method = CostBasisMethod.parse(default_method)
        self._lots: list[Lot] = []
        self.dispositions: list[Disposition] = []
        self.last_event_date: Optional[date] = None

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    @property
    def lots(self) -> list[Lot]:
        """Copies of the open lots, oldest first."""
        return [replace(lot) for lot in self._ordered(CostBasisMethod.FIFO)]

    @property
    def quantity(self) -> Decimal:
        return sum((lot.remaining_quantity for lot in self._lots), ZERO)

    @property
    def cost_basis(self) -> Decimal:
        return sum((lot.cost_basis for lot in self._lots), ZERO)

    @property
    def average_cost(self) -> Decimal:
        quantity = self.quantity
        if quantity == 0:
            return ZERO
        return self.cost_basis / quantity

    @property
    def realized_gain(self) -> Decimal:
        return sum((d.realized_gain for d in self.dispositions), ZERO)

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def apply(self, event: LedgerEvent) -> None:
        """Apply one event. Events must be fed in replay order."""
        if event.asset_id != self.asset_id:
            raise LedgerIntegrityError(
                f"Transaction {event.id} is for asset {event.asset_id}, "
                f"not {self.asset_id}"
            )

        if event.type.opens_lot:
            self._open(event)
        elif event.type.disposes:
            self._dispose(event)
        elif event.type == TransactionType.SPLIT:
            self._split(event)
        elif event.type in (TransactionType.SPINOFF, TransactionType.MERGER):
            logger.warning(
                "%s transaction %s for %s is not modelled; lots left unchanged",
                event.type.value,
                event.id,
                self.asset_id,
            )
        # dividend, interest, fee and tax move cash only

        self.last_event_date = event.date

    def _open(self, event: LedgerEvent) -> None:
        _require_positive(event.quantity, event, "quantity")
        if event.price < 0:
            raise LedgerIntegrityError(f"Transaction {event.id} has a negative price")

        plan = event.metadata.plan
        if plan is None and event.type.is_plan_grant:
            plan = PlanMetadata(plan_type="espp" if event.type == TransactionType.ESPP_PURCHASE else "rsu")

        self._lots.append(
            Lot(
                id=lot_id_for(event.id),
                asset_id=self.asset_id,
                opening_transaction_id=event.id,
                purchase_date=event.date,
                purchase_price=event.price,
                original_quantity=event.quantity,
                remaining_quantity=event.quantity,
                sequence=event.sequence,
                plan=plan,
                notes=event.metadata.notes,
            )
        )

    def _dispose(self, event: LedgerEvent) -> None:
        _require_positive(event.quantity, event, "quantity")
        requested = event.quantity

        available = self.quantity
        if requested > available:
            raise OversellError(self.asset_id, requested, available, event.id)

        method = self._method_for(event)
        if method == CostBasisMethod.SPECIFIC:
            candidates = [self._find_lot(event)]
            if candidates[0].remaining_quantity < requested:
                raise OversellError(
                    self.asset_id, requested, candidates[0].remaining_quantity, event.id
                )
        else:
            candidates = self._ordered(method)

        fee_per_unit = event.fees / requested
        net_proceeds_per_unit = event.price - fee_per_unit

        remaining = requested
        for lot in candidates:
            if remaining <= 0:
                break

            take = min(lot.remaining_quantity, remaining)
            self.dispositions.append(
                Disposition(
                    lot_id=lot.id,
                    asset_id=self.asset_id,
                    disposal_transaction_id=event.id,
                    disposed_date=event.date,
                    quantity=take,
                    proceeds_per_unit=net_proceeds_per_unit,
                    cost_basis_per_unit=lot.purchase_price,
                    is_long_term=is_long_term(lot.purchase_date, event.date),
                )
            )
            lot.remaining_quantity -= take
            remaining -= take

        # Retire depleted lots
        self._lots = [lot for lot in self._lots if lot.remaining_quantity > 0]

    def _split(self, event: LedgerEvent) -> None:
        ratio = event.quantity
        if ratio <= 0:
            raise LedgerIntegrityError(
                f"Split {event.id} for {self.asset_id} has non-positive ratio {ratio}"
            )
        for lot in self._lots:
            lot.original_quantity *= ratio
            lot.remaining_quantity *= ratio
            lot.purchase_price /= ratio
        logger.debug("Applied %s:1 split to %d lots of %s", ratio, len(self._lots), self.asset_id)

    def _method_for(self, event: LedgerEvent) -> CostBasisMethod:
        metadata = event.metadata
        if metadata.cost_basis_method is not None:
            return metadata.cost_basis_method
        if metadata.tax_lot_id:
            return CostBasisMethod.SPECIFIC
        return self.default_method

    def _find_lot(self, event: LedgerEvent) -> Lot:
        lot_id = event.metadata.tax_lot_id
        if not lot_id:
            raise LedgerIntegrityError(
                f"Specific-lot disposal {event.id} does not name a tax lot"
            )
        for lot in self._lots:
            if lot.id == lot_id:
                return lot
        raise LotNotFoundError(lot_id, self.asset_id)

    def _ordered(self, method: CostBasisMethod) -> list[Lot]:
        key = lambda lot: (lot.purchase_date, lot.sequence)  # noqa: E731
        return sorted(self._lots, key=key, reverse=method == CostBasisMethod.LIFO)


def _require_positive(value: Decimal, event: LedgerEvent, name: str) -> None:
    if value <= 0:
        raise LedgerIntegrityError(
            f"Transaction {event.id} ({event.type.value}) needs a positive {name}, got {value}"
        )


def replay_lots(
    events: Iterable[LedgerEvent],
    asset_id: str,
    method: CostBasisMethod = CostBasisMethod.FIFO,
) -> LotBook:
    """Replay the full history of one asset into a fresh LotBook."""
    book = LotBook(asset_id, method)
    for event in sort_events(list(events)):
        book.apply(event)
    return book


def replay_portfolio(
    events: Iterable[LedgerEvent],
    method: CostBasisMethod = CostBasisMethod.FIFO,
) -> dict[str, LotBook]:
    """Replay a portfolio's history into one LotBook per asset."""
    books: dict[str, LotBook] = {}
    for event in sort_events(list(events)):
        book = books.get(event.asset_id)
        if book is None:
            book = books[event.asset_id] = LotBook(event.asset_id, method)
        book.apply(event)
    return books


@dataclass(frozen=True)
class HoldingValuation:
    """Holding aggregate derived from a lot book and a price."""

    asset_id: str
    quantity: Decimal
    cost_basis: Decimal
    average_cost: Decimal
    current_price: Optional[Decimal]
    current_value: Decimal
    unrealized_gain: Decimal
    unrealized_gain_percent: Decimal
    ownership_percentage: Decimal
    lots: tuple[Lot, ...] = field(default_factory=tuple)
    dispositions: tuple[Disposition, ...] = field(default_factory=tuple)

    @property
    def is_closed(self) -> bool:
        return self.quantity == 0


def build_holding(
    book: LotBook,
    current_price: Optional[Decimal],
    ownership_percentage: Decimal = HUNDRED,
) -> HoldingValuation:
    """
    Compute holding aggregates from a replayed lot book.

    current value = quantity * current price * ownership / 100. Without a
    price the holding is valued at zero.
    """
    if ownership_percentage <= 0 or ownership_percentage > HUNDRED:
        raise LedgerIntegrityError(
            f"Ownership percentage must be in (0, 100], got {ownership_percentage}"
        )

    quantity = book.quantity
    cost_basis = book.cost_basis
    price = current_price if current_price is not None else ZERO
    current_value = quantity * price * ownership_percentage / HUNDRED
    unrealized_gain = current_value - cost_basis
    unrealized_gain_percent = (
        unrealized_gain / cost_basis * HUNDRED if cost_basis != 0 else ZERO
    )

    return HoldingValuation(
        asset_id=book.asset_id,
        quantity=quantity,
        cost_basis=cost_basis,
        average_cost=book.average_cost,
        current_price=current_price,
        current_value=current_value,
        unrealized_gain=unrealized_gain,
        unrealized_gain_percent=unrealized_gain_percent,
        ownership_percentage=ownership_percentage,
        lots=tuple(book.lots),
        dispositions=tuple(book.dispositions),
    )
