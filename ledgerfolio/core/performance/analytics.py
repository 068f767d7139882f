"""
Performance analytics over stored snapshots.

- Window summary: start/end value, total and time-weighted return, period
  high/low, best/worst day, volatility, max drawdown, annualized return
- Chart data from the aggregated snapshot series
- CSV export of chart data (pandas), and parsing it back
"""

import io
import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Optional, Sequence, Union

import pandas as pd

from ledgerfolio.core.performance.returns import (
    annualize_return,
    calculate_volatility,
    max_drawdown,
    window_return,
)
from ledgerfolio.core.performance.snapshot_service import (
    get_aggregated_snapshots,
    get_snapshots,
)
from ledgerfolio.core.types import HUNDRED, ZERO, to_date, to_decimal
from ledgerfolio.db.portfolio_models import PerformanceSnapshot

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

CSV_COLUMNS = [
    "Date",
    "Portfolio Value",
    "Daily Change",
    "Daily Change %",
    "Cumulative Return %",
]

# Characters that can trigger formula execution in spreadsheet applications
_FORMULA_TRIGGERS = frozenset("=+\\-@")


@dataclass(frozen=True)
class DayValue:
    date: date
    value: Decimal


@dataclass(frozen=True)
class PerformanceSummary:
    """Performance over a window of snapshots."""

    start_date: date
    end_date: date
    start_value: Decimal
    end_value: Decimal
    total_return: Decimal  # end - start
    total_return_percent: Decimal
    twr: Decimal  # Fraction over the window
    period_high: DayValue
    period_low: DayValue
    best_day: DayValue  # value = day change percent
    worst_day: DayValue
    volatility: float  # Annualized, percent
    max_drawdown: float  # Percent, 0 or negative
    annualized_return: Optional[float]  # Fraction, None for windows under a day
    snapshot_count: int
    has_interpolated_prices: bool


@dataclass(frozen=True)
class ChartPoint:
    date: date
    value: Decimal
    day_change: Decimal
    day_change_percent: Decimal
    cumulative_return_percent: Decimal  # Relative to the first point's value


def summarize(snapshots: Sequence[PerformanceSnapshot]) -> Optional[PerformanceSummary]:
    """Summary of a chronologically ordered window; None when it is empty."""
    if not snapshots:
        return None

    first, last = snapshots[0], snapshots[-1]

    # Ties resolve to the first date chronologically
    high = low = best = worst = first
    for snapshot in snapshots[1:]:
        if snapshot.total_value > high.total_value:
            high = snapshot
        if snapshot.total_value < low.total_value:
            low = snapshot
        if snapshot.day_change_percent > best.day_change_percent:
            best = snapshot
        if snapshot.day_change_percent < worst.day_change_percent:
            worst = snapshot

    total_return = last.total_value - first.total_value
    total_return_percent = (
        total_return / first.total_value * HUNDRED if first.total_value != 0 else ZERO
    )
    twr = window_return(first.twr_return, last.twr_return)
    days = (last.snapshot_date - first.snapshot_date).days

    return PerformanceSummary(
        start_date=first.snapshot_date,
        end_date=last.snapshot_date,
        start_value=first.total_value,
        end_value=last.total_value,
        total_return=total_return,
        total_return_percent=total_return_percent,
        twr=twr,
        period_high=DayValue(high.snapshot_date, high.total_value),
        period_low=DayValue(low.snapshot_date, low.total_value),
        best_day=DayValue(best.snapshot_date, best.day_change_percent),
        worst_day=DayValue(worst.snapshot_date, worst.day_change_percent),
        volatility=calculate_volatility([s.day_change_percent for s in snapshots]),
        max_drawdown=max_drawdown([s.total_value for s in snapshots]),
        annualized_return=annualize_return(twr, days),
        snapshot_count=len(snapshots),
        has_interpolated_prices=any(s.has_interpolated_prices for s in snapshots),
    )


def get_summary(
    portfolio: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Optional[PerformanceSummary]:
    """Summarize a portfolio's stored snapshots over a window."""
    return summarize(get_snapshots(portfolio, start_date, end_date))


def chart_points(snapshots: Sequence[PerformanceSnapshot]) -> list[ChartPoint]:
    if not snapshots:
        return []
    base = snapshots[0].total_value
    return [
        ChartPoint(
            date=s.snapshot_date,
            value=s.total_value,
            day_change=s.day_change,
            day_change_percent=s.day_change_percent,
            cumulative_return_percent=(
                (s.total_value - base) / base * HUNDRED if base != 0 else ZERO
            ),
        )
        for s in snapshots
    ]


def get_chart_data(
    portfolio: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list[ChartPoint]:
    """Aggregated chart series (daily, weekly or monthly points)."""
    return chart_points(get_aggregated_snapshots(portfolio, start_date, end_date))


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def sanitize_csv_dataframe(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy of the DataFrame with CSV injection protection applied.

    Prefixes string values starting with formula-trigger characters
    (=, +, -, @, \\) with a single quote to prevent execution in Excel/Sheets.
    """
    export_df = df.copy()
    for col in export_df.select_dtypes(include=["object"]).columns:
        export_df[col] = export_df[col].apply(
            lambda v: "'" + str(v)
            if isinstance(v, str) and v and v[0] in _FORMULA_TRIGGERS
            else v
        )
    return export_df


def chart_dataframe(points: Sequence[ChartPoint]) -> pd.DataFrame:
    """Chart points as a DataFrame with the export columns, rounded to cents."""
    rows = [
        {
            "Date": p.date.isoformat(),
            "Portfolio Value": float(_cents(p.value)),
            "Daily Change": float(_cents(p.day_change)),
            "Daily Change %": float(_cents(p.day_change_percent)),
            "Cumulative Return %": float(_cents(p.cumulative_return_percent)),
        }
        for p in points
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def points_to_csv(points: Sequence[ChartPoint]) -> str:
    df = sanitize_csv_dataframe(chart_dataframe(points))
    return df.to_csv(index=False, float_format="%.2f")


def export_to_csv(
    portfolio: str,
    path: Optional[Union[str, Path]] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> str:
    """
    Export chart data as CSV.

    Returns the CSV text; also writes it to ``path`` when given.
    """
    csv_text = points_to_csv(get_chart_data(portfolio, start_date, end_date))
    if path is not None:
        Path(path).write_text(csv_text, encoding="utf-8")
        logger.info("Exported performance CSV to %s", path)
    return csv_text


def parse_csv(csv_text: str) -> list[ChartPoint]:
    """Parse an exported performance CSV back into chart points (cents precision)."""
    df = pd.read_csv(io.StringIO(csv_text), dtype=str)
    missing = [col for col in CSV_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"CSV is missing columns: {', '.join(missing)}")

    return [
        ChartPoint(
            date=to_date(row["Date"]),
            value=_cents(to_decimal(row["Portfolio Value"], "Portfolio Value")),
            day_change=_cents(to_decimal(row["Daily Change"], "Daily Change")),
            day_change_percent=_cents(to_decimal(row["Daily Change %"], "Daily Change %")),
            cumulative_return_percent=_cents(
                to_decimal(row["Cumulative Return %"], "Cumulative Return %")
            ),
        )
        for _, row in df.iterrows()
    ]
