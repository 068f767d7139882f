"""
Custom exceptions for Ledgerfolio.

Provides a hierarchy of exceptions for ledger replay and valuation:

- LedgerIntegrityError: fatal, the operation aborts and nothing is persisted
- LedgerConfigurationError: reported, never silently defaulted
- SnapshotCancelledError: a background recompute was cancelled

Missing prices are NOT errors. They degrade to fallbacks and are exposed as
flags on the result (has_interpolated_prices, missing_prices).
"""

from decimal import Decimal
from typing import Optional


class LedgerfolioError(Exception):
    """Base exception for all Ledgerfolio errors."""

    pass


# ============================================================================
# Data integrity
# ============================================================================


class LedgerIntegrityError(LedgerfolioError):
    """Base exception for data integrity violations."""

    pass


class OversellError(LedgerIntegrityError):
    """
    Raised when a disposal asks for more quantity than the open lots hold.

    Oversells are never clamped. The replay aborts so the caller can keep the
    previously committed holding.
    """

    def __init__(
        self,
        asset_id: str,
        requested: Decimal,
        available: Decimal,
        transaction_id: Optional[str] = None,
    ):
        self.asset_id = asset_id
        self.requested = requested
        self.available = available
        self.transaction_id = transaction_id
        where = f" (transaction {transaction_id})" if transaction_id else ""
        super().__init__(
            f"Insufficient quantity of {asset_id} to dispose{where}. "
            f"Have {available}, trying to dispose {requested}"
        )


class LotNotFoundError(LedgerIntegrityError):
    """Raised when a specific-lot disposal names a lot that is not open."""

    def __init__(self, lot_id: str, asset_id: str):
        self.lot_id = lot_id
        self.asset_id = asset_id
        super().__init__(f"Tax lot {lot_id!r} is not an open lot of {asset_id}")


class InvalidDecimalError(LedgerIntegrityError):
    """Raised when a monetary or quantity value cannot be parsed as a decimal."""

    def __init__(self, value: object, field_name: Optional[str] = None):
        self.value = value
        self.field_name = field_name
        label = f" for {field_name}" if field_name else ""
        super().__init__(f"Malformed decimal value{label}: {value!r}")


class InvalidPaymentError(LedgerIntegrityError):
    """Raised when a liability payment fails validation."""

    pass


class RecordNotFoundError(LedgerIntegrityError):
    """Raised when an operation references a record that does not exist."""

    kind = "Record"

    def __init__(self, record_id: object):
        self.record_id = record_id
        super().__init__(f"{self.kind} not found: {record_id}")


class PortfolioNotFoundError(RecordNotFoundError):
    kind = "Portfolio"


class LiabilityNotFoundError(RecordNotFoundError):
    kind = "Liability"


class HoldingNotFoundError(RecordNotFoundError):
    kind = "Holding"


class TransactionNotFoundError(RecordNotFoundError):
    kind = "Transaction"


class AssetNotFoundError(RecordNotFoundError):
    kind = "Asset"


# ============================================================================
# Configuration
# ============================================================================


class LedgerConfigurationError(LedgerfolioError):
    """Raised when configuration is missing, ambiguous or out of range."""

    pass


class UnknownTransactionTypeError(LedgerConfigurationError):
    """
    Raised when a transaction type is outside the closed set.

    Unknown types are never assumed to have zero cash or lot impact.
    """

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown transaction type: {value!r}")


# ============================================================================
# Background work
# ============================================================================


class SnapshotCancelledError(LedgerfolioError):
    """Raised inside a snapshot pass when its job has been cancelled."""

    def __init__(self, portfolio_id: str):
        self.portfolio_id = portfolio_id
        super().__init__(
            f"Snapshot recompute for portfolio {portfolio_id} was cancelled; "
            "committed snapshots were left unchanged"
        )
