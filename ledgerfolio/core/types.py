"""
Ledger value types and the decimal model.

Everything the replay engine consumes is expressed with these immutable
types. Monetary and quantity values are always ``decimal.Decimal``; they are
serialized as strings for storage and parsed back on read.
"""

import json
import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union

from ledgerfolio.core.exceptions import InvalidDecimalError, UnknownTransactionTypeError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

Numeric = Union[int, float, Decimal, str]


def to_decimal(value: Numeric, field_name: Optional[str] = None) -> Decimal:
    """Convert a numeric value to Decimal safely.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1"), not the binary
    approximation. NaN and infinities are rejected.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidDecimalError(value, field_name)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidDecimalError(value, field_name) from None
    if not result.is_finite():
        raise InvalidDecimalError(value, field_name)
    return result


def decimal_to_str(value: Decimal) -> str:
    """Serialize a Decimal for storage without losing precision."""
    return str(to_decimal(value))


def to_date(value: Union[date, datetime, str]) -> date:
    """Normalize a date, datetime or ISO string to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class TransactionType(str, Enum):
    """Closed set of ledger event types."""

    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    INTEREST = "interest"
    SPLIT = "split"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    FEE = "fee"
    TAX = "tax"
    SPINOFF = "spinoff"
    MERGER = "merger"
    REINVESTMENT = "reinvestment"
    ESPP_PURCHASE = "espp_purchase"
    RSU_VEST = "rsu_vest"

    @classmethod
    def parse(cls, value: Union[str, "TransactionType"]) -> "TransactionType":
        """Parse a stored or user-entered type, rejecting anything outside the set."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownTransactionTypeError(value) from None

    @property
    def opens_lot(self) -> bool:
        return self in _LOT_OPENING

    @property
    def disposes(self) -> bool:
        return self in _LOT_DISPOSING

    @property
    def is_plan_grant(self) -> bool:
        """ESPP purchases and RSU vests carry plan metadata."""
        return self in (TransactionType.ESPP_PURCHASE, TransactionType.RSU_VEST)


_LOT_OPENING = frozenset(
    {
        TransactionType.BUY,
        TransactionType.ESPP_PURCHASE,
        TransactionType.RSU_VEST,
        TransactionType.TRANSFER_IN,
        TransactionType.REINVESTMENT,
    }
)
_LOT_DISPOSING = frozenset({TransactionType.SELL, TransactionType.TRANSFER_OUT})


class CostBasisMethod(str, Enum):
    """Lot disposal discipline."""

    FIFO = "fifo"
    LIFO = "lifo"
    SPECIFIC = "specific"

    @classmethod
    def parse(cls, value: Union[str, "CostBasisMethod"]) -> "CostBasisMethod":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid cost_basis_method: {value}") from None


@dataclass(frozen=True)
class PlanMetadata:
    """Employee stock plan details attached to ESPP/RSU lots for tax reporting."""

    plan_type: str  # espp, rsu
    grant_date: Optional[date] = None
    vesting_date: Optional[date] = None
    discount_percent: Optional[Decimal] = None
    withheld_shares: Optional[Decimal] = None
    bargain_element: Optional[Decimal] = None  # Per-share discount income (ESPP)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, date):
                data[key] = value.isoformat()
            elif isinstance(value, Decimal):
                data[key] = decimal_to_str(value)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanMetadata":
        def _date(key: str) -> Optional[date]:
            return to_date(data[key]) if data.get(key) else None

        def _dec(key: str) -> Optional[Decimal]:
            return to_decimal(data[key], key) if data.get(key) is not None else None

        return cls(
            plan_type=data.get("plan_type", "espp"),
            grant_date=_date("grant_date"),
            vesting_date=_date("vesting_date"),
            discount_percent=_dec("discount_percent"),
            withheld_shares=_dec("withheld_shares"),
            bargain_element=_dec("bargain_element"),
        )


@dataclass(frozen=True)
class TransactionMetadata:
    """Variant payload of a transaction.

    ``plan`` is only meaningful for ESPP/RSU events; ``tax_lot_id`` and
    ``cost_basis_method`` only for disposals.
    """

    plan: Optional[PlanMetadata] = None
    tax_lot_id: Optional[str] = None
    cost_basis_method: Optional[CostBasisMethod] = None
    notes: Optional[str] = None

    def to_json(self) -> str:
        data: dict[str, Any] = {}
        if self.plan is not None:
            data["plan"] = self.plan.to_dict()
        if self.tax_lot_id:
            data["tax_lot_id"] = self.tax_lot_id
        if self.cost_basis_method is not None:
            data["cost_basis_method"] = self.cost_basis_method.value
        if self.notes:
            data["notes"] = self.notes
        return json.dumps(data, sort_keys=True)

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "TransactionMetadata":
        if not raw:
            return cls()
        data = json.loads(raw)
        method = data.get("cost_basis_method")
        return cls(
            plan=PlanMetadata.from_dict(data["plan"]) if data.get("plan") else None,
            tax_lot_id=data.get("tax_lot_id"),
            cost_basis_method=CostBasisMethod.parse(method) if method else None,
            notes=data.get("notes"),
        )


def default_total_amount(
    tx_type: TransactionType, quantity: Decimal, price: Decimal, fees: Decimal
) -> Decimal:
    """Total amount when the caller did not supply one.

    Buy-like events cost quantity * price + fees, disposals return
    quantity * price - fees. Everything else is quantity * price.
    """
    gross = quantity * price
    if tx_type.opens_lot:
        return gross + fees
    if tx_type.disposes:
        return gross - fees
    return gross


@dataclass(frozen=True)
class LedgerEvent:
    """Immutable transaction event as seen by the replay engine."""

    id: str
    portfolio_id: str
    asset_id: str
    type: TransactionType
    date: date
    quantity: Decimal
    price: Decimal
    fees: Decimal = ZERO
    total_amount: Decimal = ZERO
    currency: str = "USD"
    metadata: TransactionMetadata = field(default_factory=TransactionMetadata)
    sequence: int = 0  # Insertion order, breaks ties between same-day events

    @classmethod
    def create(
        cls,
        id: str,
        portfolio_id: str,
        asset_id: str,
        type: Union[str, TransactionType],
        date: Union[date, datetime, str],
        quantity: Numeric,
        price: Numeric = 0,
        fees: Numeric = 0,
        total_amount: Optional[Numeric] = None,
        currency: str = "USD",
        metadata: Optional[TransactionMetadata] = None,
        sequence: int = 0,
    ) -> "LedgerEvent":
        """Build an event from loosely typed input, validating every decimal."""
        tx_type = TransactionType.parse(type)
        qty = to_decimal(quantity, "quantity")
        pps = to_decimal(price, "price")
        fee = to_decimal(fees, "fees")
        total = (
            to_decimal(total_amount, "total_amount")
            if total_amount is not None
            else default_total_amount(tx_type, qty, pps, fee)
        )
        return cls(
            id=str(id),
            portfolio_id=str(portfolio_id),
            asset_id=str(asset_id),
            type=tx_type,
            date=to_date(date),
            quantity=qty,
            price=pps,
            fees=fee,
            total_amount=total,
            currency=currency,
            metadata=metadata or TransactionMetadata(),
            sequence=sequence,
        )

    def replaced(self, **changes: Any) -> "LedgerEvent":
        """Return an edited copy that keeps the same id."""
        return replace(self, **changes)

    @property
    def sort_key(self) -> tuple[date, int, str]:
        return (self.date, self.sequence, self.id)


@dataclass(frozen=True)
class PaymentEvent:
    """Immutable liability payment."""

    liability_id: str
    date: date
    principal_paid: Decimal
    interest_paid: Decimal = ZERO
    remaining_balance: Optional[Decimal] = None


def sort_events(events: list[LedgerEvent]) -> list[LedgerEvent]:
    """Chronological replay order."""
    return sorted(events, key=lambda e: e.sort_key)
