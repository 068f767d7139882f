"""
Tests for performance analytics.

Covers window summaries, chart points and the CSV export/parse cycle.
"""

from datetime import date, timedelta
from decimal import Decimal

import pandas as pd
import pytest

from ledgerfolio.core.performance.analytics import (
    CSV_COLUMNS,
    ChartPoint,
    chart_points,
    export_to_csv,
    get_summary,
    parse_csv,
    points_to_csv,
    sanitize_csv_dataframe,
    summarize,
)
from ledgerfolio.core.performance.snapshot_service import compute_snapshots
from ledgerfolio.db.portfolio_models import PerformanceSnapshot

START = date(2024, 1, 1)


def series(values, percents=None, twrs=None):
    percents = percents or [0] * len(values)
    twrs = twrs or [0] * len(values)
    return [
        PerformanceSnapshot(
            portfolio_id="p1",
            snapshot_date=START + timedelta(days=i),
            total_value=Decimal(str(v)),
            day_change_percent=Decimal(str(p)),
            twr_return=Decimal(str(t)),
        )
        for i, (v, p, t) in enumerate(zip(values, percents, twrs))
    ]


class TestSummarize:
    def test_empty(self):
        assert summarize([]) is None

    def test_window(self):
        snapshots = series(
            [1000, 1100, 990, 1200],
            percents=[0, 10, -10, "21.21"],
            twrs=[0, "0.1", "-0.01", "0.2"],
        )

        summary = summarize(snapshots)

        assert summary.start_value == Decimal("1000")
        assert summary.end_value == Decimal("1200")
        assert summary.total_return == Decimal("200")
        assert summary.total_return_percent == Decimal("20")
        assert summary.twr == Decimal("0.2")
        assert summary.period_high.value == Decimal("1200")
        assert summary.period_low.date == START + timedelta(days=2)
        assert summary.best_day.date == START + timedelta(days=3)
        assert summary.worst_day.value == Decimal("-10")
        assert summary.max_drawdown == pytest.approx(-10.0)
        assert summary.volatility > 0
        assert summary.snapshot_count == 4

    def test_ties_resolve_to_first_date(self):
        summary = summarize(series([1000, 1000, 1000]))
        assert summary.period_high.date == START
        assert summary.period_low.date == START
        assert summary.best_day.date == START

    def test_single_snapshot(self):
        summary = summarize(series([500]))
        assert summary.total_return == 0
        assert summary.volatility == 0.0
        assert summary.annualized_return is None


class TestChartPoints:
    def test_cumulative_relative_to_first(self):
        points = chart_points(series([1000, 1100, 900]))
        assert [p.cumulative_return_percent for p in points] == [
            Decimal("0"),
            Decimal("10"),
            Decimal("-10"),
        ]

    def test_zero_base(self):
        points = chart_points(series([0, 100]))
        assert points[1].cumulative_return_percent == 0


class TestCsv:
    def test_columns_and_rounding(self):
        points = [
            ChartPoint(START, Decimal("1234.567"), Decimal("12.345"), Decimal("1.005"), Decimal("0")),
        ]

        text = points_to_csv(points)

        lines = text.strip().splitlines()
        assert lines[0] == ",".join(CSV_COLUMNS)
        # Decimal half-up rounding happens before the float conversion
        assert lines[1] == "2024-01-01,1234.57,12.35,1.01,0.00"

    def test_parse_round_trip_at_cents(self):
        points = chart_points(series([1000, "1100.50", "990.25"], percents=[0, "10.05", "-10.02"]))

        parsed = parse_csv(points_to_csv(points))

        assert [p.date for p in parsed] == [p.date for p in points]
        assert [p.value for p in parsed] == [Decimal("1000.00"), Decimal("1100.50"), Decimal("990.25")]
        assert parsed[1].day_change_percent == Decimal("10.05")

    def test_parse_rejects_missing_columns(self):
        with pytest.raises(ValueError, match="missing columns"):
            parse_csv("Date,Portfolio Value\n2024-01-01,1\n")

    def test_formula_injection_escaped(self):
        df = pd.DataFrame({"Note": ["=cmd()", "+1", "safe", "@x"]})
        cleaned = sanitize_csv_dataframe(df)
        assert cleaned["Note"].tolist() == ["'=cmd()", "'+1", "safe", "'@x"]
        assert df["Note"].tolist()[0] == "=cmd()"


class TestWithDatabase:
    @pytest.fixture
    def computed(self, manager, portfolio):
        manager.add_asset("VTI", current_price="110")
        manager.record_price("VTI", START, "100")
        manager.record_price("VTI", START + timedelta(days=1), "110")
        manager.add_transaction("Retirement", "VTI", "buy", START, "10", "100")
        compute_snapshots("Retirement", to_date=START + timedelta(days=1))
        return portfolio

    def test_get_summary(self, computed):
        summary = get_summary("Retirement")
        assert summary.end_value == Decimal("1100")
        assert summary.twr == Decimal("0.1")

    def test_export_writes_file(self, computed, tmp_path):
        path = tmp_path / "performance.csv"

        text = export_to_csv("Retirement", path)

        assert path.read_text(encoding="utf-8") == text
        parsed = parse_csv(text)
        assert [p.value for p in parsed] == [Decimal("1000.00"), Decimal("1100.00")]
        assert parsed[1].cumulative_return_percent == Decimal("10.00")

    def test_empty_window(self, computed):
        assert get_summary("Retirement", start_date=date(2030, 1, 1)) is None
