"""
Return calculations on a series of portfolio values.

Ledger amounts stay Decimal. Dispersion statistics (volatility, drawdown,
annualization) are computed in float, the same as any statistics package
would, and only used for display.
"""

import math
from decimal import Decimal
from typing import Optional, Sequence

from ledgerfolio.core.types import HUNDRED, ZERO

TRADING_DAYS_PER_YEAR = 252


def day_change(value: Decimal, previous: Optional[Decimal]) -> tuple[Decimal, Decimal]:
    """
    Absolute and percent change against the previous value.

    Returns (0, 0) without a previous value, and a zero percent when the
    previous value is zero.
    """
    if previous is None:
        return ZERO, ZERO
    change = value - previous
    percent = change / previous * HUNDRED if previous != 0 else ZERO
    return change, percent


def period_return(
    value: Decimal, previous: Decimal, net_contribution: Decimal = ZERO
) -> Decimal:
    """
    Sub-period return with external flows removed.

    r = (V_t - V_{t-1} - C_t) / V_{t-1}, 0 when V_{t-1} is 0.
    """
    if previous == 0:
        return ZERO
    return (value - previous - net_contribution) / previous


def chain_return(cumulative: Decimal, period: Decimal) -> Decimal:
    """(1 + TWR_{t-1})(1 + r) - 1"""
    return (1 + cumulative) * (1 + period) - 1


def compound_returns(returns: Sequence[Decimal]) -> Decimal:
    """Chain a sequence of sub-period returns into one time-weighted return."""
    result = ZERO
    for period in returns:
        result = chain_return(result, period)
    return result


def window_return(twr_start: Decimal, twr_end: Decimal) -> Decimal:
    """TWR between two snapshots from their cumulative TWRs."""
    if twr_start == -1:
        return ZERO
    return (1 + twr_end) / (1 + twr_start) - 1


def calculate_volatility(daily_change_percents: Sequence[Decimal]) -> float:
    """
    Annualized volatility in percent.

    Sample standard deviation of the non-zero daily percent changes, scaled
    by sqrt(252). Fewer than two usable points gives 0.
    """
    points = [float(p) for p in daily_change_percents if p != 0]
    if len(points) < 2:
        return 0.0

    mean = sum(points) / len(points)
    variance = sum((p - mean) ** 2 for p in points) / (len(points) - 1)
    # Guard against float noise on identical points
    if variance < 1e-18:
        return 0.0
    return math.sqrt(variance) * math.sqrt(TRADING_DAYS_PER_YEAR)


def max_drawdown(values: Sequence[Decimal]) -> float:
    """Worst peak-to-trough decline in percent (0 or negative)."""
    worst = 0.0
    running_peak: Optional[float] = None
    for raw in values:
        value = float(raw)
        if running_peak is None or value > running_peak:
            running_peak = value
        if running_peak:
            drawdown = (value - running_peak) / running_peak * 100
            if drawdown < worst:
                worst = drawdown
    return worst


def annualize_return(total_return: Decimal, days: int) -> Optional[float]:
    """
    Annualize a fractional return over ``days`` calendar days.

    Returns None for periods shorter than a day or a total loss.
    """
    if days <= 0:
        return None
    growth = 1 + float(total_return)
    if growth <= 0:
        return None
    return growth ** (365.0 / days) - 1
