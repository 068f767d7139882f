"""
Database module for Ledgerfolio.

Provides SQLModel definitions and connection management for the ledger store.
"""

from ledgerfolio.db.database import get_engine, get_session, init_db, reset_engine
from ledgerfolio.db.models import Asset, Portfolio, PriceHistory
from ledgerfolio.db.portfolio_models import (
    Holding,
    Liability,
    LiabilityPayment,
    LotDisposition,
    PerformanceSnapshot,
    TaxLot,
    Transaction,
)

__all__ = [
    # Models
    "Portfolio",
    "Asset",
    "PriceHistory",
    "Transaction",
    "Holding",
    "TaxLot",
    "LotDisposition",
    "Liability",
    "LiabilityPayment",
    "PerformanceSnapshot",
    # Database
    "get_engine",
    "get_session",
    "init_db",
    "reset_engine",
]
