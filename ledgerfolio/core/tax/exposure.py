"""
Unrealized tax exposure.

Classifies open lots as short-term (held < 365 days) or long-term
(>= 365 days), estimates the tax due if every lot were sold at the asset's
current price, and flags short-term lots that are about to turn long-term.

Estimated tax = ST gains x (short-term + state rate)
              + LT gains x (long-term + state rate)
Losses are reported but never taxed.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional, Protocol, Sequence

from ledgerfolio.config import config
from ledgerfolio.core.portfolio.lots import LONG_TERM_DAYS
from ledgerfolio.core.types import ZERO, PlanMetadata, to_decimal

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class HoldingPeriod(str, Enum):
    SHORT = "short"
    LONG = "long"


class LotLike(Protocol):
    id: str
    purchase_date: date
    purchase_price: Decimal
    remaining_quantity: Decimal
    plan: Optional[PlanMetadata]


class HoldingLike(Protocol):
    asset_id: str
    lots: Sequence[LotLike]


@dataclass(frozen=True)
class TaxSettings:
    """Tax rates as fractions (0.24 == 24%)."""

    short_term_rate: Decimal = field(default_factory=lambda: config.short_term_rate)
    long_term_rate: Decimal = field(default_factory=lambda: config.long_term_rate)
    state_rate: Decimal = field(default_factory=lambda: config.state_rate)

    def __post_init__(self) -> None:
        for name in ("short_term_rate", "long_term_rate", "state_rate"):
            rate = to_decimal(getattr(self, name), name)
            if rate < 0 or rate > 1:
                raise ValueError(f"{name} must be between 0 and 1, got {rate}")
            object.__setattr__(self, name, rate)


@dataclass(frozen=True)
class LotAnalysis:
    lot_id: str
    asset_id: str
    purchase_date: date
    quantity: Decimal
    cost_basis: Decimal
    current_value: Decimal
    unrealized_gain: Decimal
    holding_period: HoldingPeriod
    holding_days: int
    lot_type: str  # standard, espp, rsu
    bargain_element: Optional[Decimal] = None
    adjusted_cost_basis: Optional[Decimal] = None  # ESPP: cost + bargain element x quantity


@dataclass(frozen=True)
class TaxExposure:
    total_unrealized_gain: Decimal
    total_unrealized_loss: Decimal
    net_unrealized_gain: Decimal
    short_term_gains: Decimal
    long_term_gains: Decimal
    short_term_losses: Decimal
    long_term_losses: Decimal
    estimated_short_term_tax: Decimal
    estimated_long_term_tax: Decimal
    total_estimated_tax: Decimal
    effective_rate: Decimal  # Total tax / total gains, 0 without gains
    lots: tuple[LotAnalysis, ...] = ()
    skipped_assets: tuple[str, ...] = ()


@dataclass(frozen=True)
class AgingLot:
    lot_id: str
    asset_id: str
    purchase_date: date
    quantity: Decimal
    days_held: int
    days_until_long_term: int
    unrealized_gain: Decimal


def days_held(purchase_date: date, as_of: date) -> int:
    return (as_of - purchase_date).days


def holding_period(purchase_date: date, as_of: date) -> HoldingPeriod:
    if days_held(purchase_date, as_of) >= LONG_TERM_DAYS:
        return HoldingPeriod.LONG
    return HoldingPeriod.SHORT


def analyze_lot(lot: LotLike, asset_id: str, current_price: Decimal, as_of: date) -> LotAnalysis:
    quantity = lot.remaining_quantity
    cost_basis = lot.purchase_price * quantity
    current_value = current_price * quantity
    plan = lot.plan

    bargain = plan.bargain_element if plan is not None else None
    adjusted = None
    if plan is not None and plan.plan_type == "espp" and bargain is not None:
        adjusted = cost_basis + bargain * quantity

    return LotAnalysis(
        lot_id=lot.id,
        asset_id=asset_id,
        purchase_date=lot.purchase_date,
        quantity=quantity,
        cost_basis=cost_basis,
        current_value=current_value,
        unrealized_gain=current_value - cost_basis,
        holding_period=holding_period(lot.purchase_date, as_of),
        holding_days=days_held(lot.purchase_date, as_of),
        lot_type=plan.plan_type if plan is not None else "standard",
        bargain_element=bargain,
        adjusted_cost_basis=adjusted,
    )


def calculate_tax_exposure(
    holdings: Iterable[HoldingLike],
    current_prices: Mapping[str, Optional[Decimal]],
    tax_settings: Optional[TaxSettings] = None,
    as_of: Optional[date] = None,
) -> TaxExposure:
    """
    Estimate tax on unrealized gains of all open lots.

    Holdings whose asset has no current price are skipped and listed in
    ``skipped_assets``.
    """
    settings = tax_settings or TaxSettings()
    as_of = as_of or date.today()

    st_gains = lt_gains = st_losses = lt_losses = ZERO
    analyses: list[LotAnalysis] = []
    skipped: list[str] = []

    for holding in holdings:
        price = current_prices.get(holding.asset_id)
        if price is None:
            logger.warning("Tax exposure: skipping %s, no current price", holding.asset_id)
            skipped.append(holding.asset_id)
            continue

        for lot in holding.lots:
            if lot.remaining_quantity <= 0:
                continue
            analysis = analyze_lot(lot, holding.asset_id, price, as_of)
            analyses.append(analysis)

            gain = analysis.unrealized_gain
            short = analysis.holding_period == HoldingPeriod.SHORT
            if gain > 0:
                if short:
                    st_gains += gain
                else:
                    lt_gains += gain
            elif gain < 0:
                if short:
                    st_losses += -gain
                else:
                    lt_losses += -gain

    st_tax = (st_gains * (settings.short_term_rate + settings.state_rate)).quantize(
        CENT, rounding=ROUND_HALF_UP
    )
    lt_tax = (lt_gains * (settings.long_term_rate + settings.state_rate)).quantize(
        CENT, rounding=ROUND_HALF_UP
    )
    total_tax = st_tax + lt_tax
    total_gain = st_gains + lt_gains
    total_loss = st_losses + lt_losses

    return TaxExposure(
        total_unrealized_gain=total_gain,
        total_unrealized_loss=total_loss,
        net_unrealized_gain=total_gain - total_loss,
        short_term_gains=st_gains,
        long_term_gains=lt_gains,
        short_term_losses=st_losses,
        long_term_losses=lt_losses,
        estimated_short_term_tax=st_tax,
        estimated_long_term_tax=lt_tax,
        total_estimated_tax=total_tax,
        effective_rate=total_tax / total_gain if total_gain > 0 else ZERO,
        lots=tuple(analyses),
        skipped_assets=tuple(skipped),
    )


def detect_aging_lots(
    holdings: Iterable[HoldingLike],
    current_prices: Mapping[str, Optional[Decimal]],
    lookback_days: Optional[int] = None,
    as_of: Optional[date] = None,
) -> list[AgingLot]:
    """
    Short-term lots that turn long-term within ``lookback_days``.

    Sorted by days remaining, soonest first.
    """
    lookback = config.aging_lookback_days if lookback_days is None else lookback_days
    as_of = as_of or date.today()

    aging: list[AgingLot] = []
    for holding in holdings:
        price = current_prices.get(holding.asset_id)
        if price is None:
            continue
        for lot in holding.lots:
            if lot.remaining_quantity <= 0:
                continue
            held = days_held(lot.purchase_date, as_of)
            if held >= LONG_TERM_DAYS:
                continue
            remaining = LONG_TERM_DAYS - held
            if remaining <= lookback:
                aging.append(
                    AgingLot(
                        lot_id=lot.id,
                        asset_id=holding.asset_id,
                        purchase_date=lot.purchase_date,
                        quantity=lot.remaining_quantity,
                        days_held=held,
                        days_until_long_term=remaining,
                        unrealized_gain=(price - lot.purchase_price) * lot.remaining_quantity,
                    )
                )

    aging.sort(key=lambda lot: lot.days_until_long_term)
    return aging
