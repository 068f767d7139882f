"""
Point-in-time price lookup.

Valuation never fetches prices itself. It reads them through a PriceOracle:
``current_price`` for the latest quote and ``price_history`` for dated closes.
Two oracles are provided:

- StoredPriceOracle: reads the Asset and PriceHistory tables
- StaticPriceOracle: in-memory mapping, for tests and offline valuation

A missing price is never an error. The lookup falls back to the current
price, then to zero, and reports the fallback through ``is_interpolated``.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Protocol, Sequence

from sqlmodel import Session, select

from ledgerfolio.core.types import ZERO, to_decimal

logger = logging.getLogger(__name__)

PricePoint = tuple[date, Decimal]

# Where a looked-up price came from
SOURCE_HISTORY = "history"
SOURCE_CURRENT = "current"
SOURCE_NONE = "none"


class PriceOracle(Protocol):
    """Read-only price capability consumed by the valuation engines."""

    def current_price(self, asset_id: str) -> Optional[Decimal]:
        ...

    def price_history(self, asset_id: str) -> list[PricePoint]:
        """Dated closes for an asset, ascending by date."""
        ...


@dataclass(frozen=True)
class PriceLookup:
    """Result of a point-in-time lookup."""

    price: Decimal
    is_interpolated: bool
    source: str
    price_date: Optional[date] = None

    @property
    def is_missing(self) -> bool:
        return self.source == SOURCE_NONE


def descending(history: Iterable[PricePoint]) -> list[PricePoint]:
    """Sort a price history newest first, for early-exit scans."""
    return sorted(history, key=lambda point: point[0], reverse=True)


def latest_on_or_before(
    history_desc: Sequence[PricePoint], target: date
) -> Optional[PricePoint]:
    """First point dated on or before ``target`` in a newest-first history."""
    for point in history_desc:
        if point[0] <= target:
            return point
    return None


def price_at_date(
    history_desc: Sequence[PricePoint],
    target: date,
    current_price: Optional[Decimal] = None,
    threshold_days: Optional[int] = None,
) -> PriceLookup:
    """
    Price an asset as of ``target``.

    Args:
        history_desc: Price history sorted newest first.
        target: Valuation date.
        current_price: Fallback when no dated close exists on or before target.
        threshold_days: A close older than this many days is flagged as
            interpolated. None disables the staleness check.

    Returns:
        PriceLookup with the price, its source and the interpolation flag.
    """
    point = latest_on_or_before(history_desc, target)
    if point is not None:
        price_date, close = point
        stale = threshold_days is not None and (target - price_date).days > threshold_days
        return PriceLookup(
            price=close,
            is_interpolated=stale,
            source=SOURCE_HISTORY,
            price_date=price_date,
        )
    if current_price is not None:
        return PriceLookup(price=current_price, is_interpolated=True, source=SOURCE_CURRENT)
    return PriceLookup(price=ZERO, is_interpolated=True, source=SOURCE_NONE)


class StaticPriceOracle:
    """
    In-memory price oracle.

    Example:
        oracle = StaticPriceOracle(
            current={"aapl": Decimal("190")},
            history={"aapl": [(date(2024, 1, 2), Decimal("185.64"))]},
        )
    """

    def __init__(
        self,
        current: Optional[Mapping[str, object]] = None,
        history: Optional[Mapping[str, Iterable[tuple[date, object]]]] = None,
    ):
        self._current = {
            asset_id: to_decimal(price, "current_price")
            for asset_id, price in (current or {}).items()
        }
        self._history = {
            asset_id: sorted(
                ((day, to_decimal(close, "close")) for day, close in points),
                key=lambda point: point[0],
            )
            for asset_id, points in (history or {}).items()
        }

    def current_price(self, asset_id: str) -> Optional[Decimal]:
        return self._current.get(asset_id)

    def price_history(self, asset_id: str) -> list[PricePoint]:
        return list(self._history.get(asset_id, []))


class StoredPriceOracle:
    """
    Price oracle backed by the Asset and PriceHistory tables.

    Histories are read once per asset and kept for the lifetime of the
    oracle, so create a new oracle to see newly recorded prices.
    """

    def __init__(self, session: Session):
        self._session = session
        self._history_cache: dict[str, list[PricePoint]] = {}

    def current_price(self, asset_id: str) -> Optional[Decimal]:
        from ledgerfolio.db.models import Asset

        asset = self._session.get(Asset, asset_id)
        return asset.current_price if asset is not None else None

    def price_history(self, asset_id: str) -> list[PricePoint]:
        from ledgerfolio.db.models import PriceHistory

        if asset_id not in self._history_cache:
            rows = self._session.exec(
                select(PriceHistory)
                .where(PriceHistory.asset_id == asset_id)
                .order_by(PriceHistory.price_date)
            ).all()
            self._history_cache[asset_id] = [(row.price_date, row.close) for row in rows]
            logger.debug("Loaded %d prices for asset %s", len(rows), asset_id)
        return list(self._history_cache[asset_id])
