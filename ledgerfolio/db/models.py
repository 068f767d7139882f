"""
SQLModel definitions for Ledgerfolio reference data.

Defines the schema for:
- Portfolio: A named container of transactions, holdings and liabilities
- Asset: A priced instrument (stock, fund, crypto...)
- PriceHistory: Daily closing prices backing the stored price oracle
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlmodel import Field, SQLModel, UniqueConstraint

from ledgerfolio.db.types import DecimalString


def new_id() -> str:
    """Opaque string primary key."""
    return uuid.uuid4().hex


class Portfolio(SQLModel, table=True):
    """
    Portfolio container.

    Every transaction, holding, liability and snapshot belongs to exactly
    one portfolio.
    """

    __tablename__ = "portfolios"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    name: str = Field(index=True, unique=True, max_length=100)
    base_currency: str = Field(default="USD", max_length=3)

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Asset(SQLModel, table=True):
    """
    Priced instrument.

    ``current_price`` is the latest known quote. It is the fallback when no
    historical price exists on or before a valuation date.
    """

    __tablename__ = "assets"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    symbol: str = Field(index=True, unique=True, max_length=20)
    name: Optional[str] = Field(default=None, max_length=255)
    asset_type: str = Field(default="stock", max_length=20)  # stock, etf, fund, crypto, cash
    current_price: Optional[Decimal] = Field(default=None, sa_type=DecimalString)

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PriceHistory(SQLModel, table=True):
    """
    Daily closing price for an asset.

    One row per (asset, date); re-recording a day overwrites the close.
    """

    __tablename__ = "price_history"
    __table_args__ = (
        UniqueConstraint("asset_id", "price_date", name="uq_price_asset_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    asset_id: str = Field(foreign_key="assets.id", index=True, max_length=64)
    price_date: date = Field(index=True)
    close: Decimal = Field(sa_type=DecimalString)
