"""
Net worth over time.

net worth = sum of holding values - sum of liability balances, both taken as
of a date. Holding values use the latest price on or before the date, then
the asset's current price, then zero. Liability balances are reconstructed
from the payment log.

A NetWorthCache snapshots everything one pass needs (holdings, prices,
liabilities, payments). It is immutable; new data means building a new one.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional

from sqlmodel import Session, select

from ledgerfolio.core.planning.liabilities import LiabilityState, balance_at_date
from ledgerfolio.core.portfolio.manager import load_payments, resolve_portfolio
from ledgerfolio.core.prices import PricePoint, PriceOracle, StoredPriceOracle, descending, latest_on_or_before
from ledgerfolio.core.types import HUNDRED, ZERO, PaymentEvent, to_date
from ledgerfolio.db.database import get_session
from ledgerfolio.db.portfolio_models import Holding, Liability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetWorthPoint:
    date: date
    assets: Decimal
    liabilities: Decimal
    net_worth: Decimal
    missing_prices: tuple[str, ...] = ()


@dataclass(frozen=True)
class HoldingState:
    asset_id: str
    quantity: Decimal
    ownership_percentage: Decimal = HUNDRED


@dataclass(frozen=True)
class NetWorthCache:
    """Everything a net worth pass reads, loaded once."""

    portfolio_id: str
    holdings: tuple[HoldingState, ...]
    current_prices: Mapping[str, Optional[Decimal]]
    histories: Mapping[str, tuple[PricePoint, ...]]  # Newest first
    liabilities: tuple[LiabilityState, ...]
    payments: Mapping[str, tuple[PaymentEvent, ...]]

    @classmethod
    def create(
        cls,
        portfolio_id: str,
        holdings: list[HoldingState],
        oracle: PriceOracle,
        liabilities: list[LiabilityState],
        payments: Mapping[str, list[PaymentEvent]],
    ) -> "NetWorthCache":
        asset_ids = sorted({h.asset_id for h in holdings})
        return cls(
            portfolio_id=portfolio_id,
            holdings=tuple(holdings),
            current_prices=MappingProxyType({a: oracle.current_price(a) for a in asset_ids}),
            histories=MappingProxyType(
                {a: tuple(descending(oracle.price_history(a))) for a in asset_ids}
            ),
            liabilities=tuple(liabilities),
            payments=MappingProxyType(
                {lid: tuple(sorted(p, key=lambda e: e.date)) for lid, p in payments.items()}
            ),
        )

    @classmethod
    def build(
        cls, session: Session, portfolio_id: str, oracle: Optional[PriceOracle] = None
    ) -> "NetWorthCache":
        """Load a portfolio's holdings, prices, liabilities and payments."""
        holdings = [
            HoldingState(h.asset_id, h.quantity, h.ownership_percentage)
            for h in session.exec(
                select(Holding).where(Holding.portfolio_id == portfolio_id)
            ).all()
        ]
        liability_rows = session.exec(
            select(Liability).where(Liability.portfolio_id == portfolio_id)
        ).all()
        liabilities = [
            LiabilityState(row.id, row.name, row.balance, row.start_date)
            for row in liability_rows
        ]
        payments = {row.id: load_payments(session, row.id) for row in liability_rows}
        return cls.create(
            portfolio_id,
            holdings,
            oracle or StoredPriceOracle(session),
            liabilities,
            payments,
        )

    def price_at(self, asset_id: str, target: date) -> Optional[Decimal]:
        point = latest_on_or_before(self.histories.get(asset_id, ()), target)
        if point is not None:
            return point[1]
        return self.current_prices.get(asset_id)

    def net_worth_at(self, target: date) -> NetWorthPoint:
        assets = ZERO
        missing = []
        for holding in self.holdings:
            price = self.price_at(holding.asset_id, target)
            if price is None:
                missing.append(holding.asset_id)
                continue
            assets += holding.quantity * price * holding.ownership_percentage / HUNDRED

        liabilities = sum(
            (
                balance_at_date(liability, self.payments.get(liability.id, ()), target)
                for liability in self.liabilities
            ),
            ZERO,
        )
        if missing:
            logger.warning("No price for %d holdings on %s; valued at zero", len(missing), target)
        return NetWorthPoint(
            date=target,
            assets=assets,
            liabilities=liabilities,
            net_worth=assets - liabilities,
            missing_prices=tuple(missing),
        )


def month_ends(start: date, end: date) -> list[date]:
    """Last day of every calendar month touched by start..end."""
    if end < start:
        return []
    result = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        result.append(date(year, month, calendar.monthrange(year, month)[1]))
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return result


def net_worth_at_date(
    portfolio: str, target_date, oracle: Optional[PriceOracle] = None
) -> NetWorthPoint:
    """Net worth of a portfolio as of a date."""
    with get_session() as session:
        portfolio_row = resolve_portfolio(session, portfolio)
        cache = NetWorthCache.build(session, portfolio_row.id, oracle)
    return cache.net_worth_at(to_date(target_date))


def get_net_worth_history(
    portfolio: str, start, end, oracle: Optional[PriceOracle] = None
) -> list[NetWorthPoint]:
    """Month-end net worth points over a range, all from one cache."""
    with get_session() as session:
        portfolio_row = resolve_portfolio(session, portfolio)
        cache = NetWorthCache.build(session, portfolio_row.id, oracle)
    points = [cache.net_worth_at(day) for day in month_ends(to_date(start), to_date(end))]
    logger.info("Computed %d net worth points for %s", len(points), portfolio_row.name)
    return points
