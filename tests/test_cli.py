"""
Tests for CLI commands.

Tests cover:
- Main CLI group, help and version
- db init
- portfolio ledger commands and their error output
- prices, liability, networth, performance and tax commands
"""

from datetime import date, timedelta
from pathlib import Path

import pytest
from rich.console import Console

from ledgerfolio.cli.main import cli
from ledgerfolio.core.portfolio.manager import PortfolioManager


@pytest.fixture
def runner(cli_runner, tmp_db: Path, monkeypatch: pytest.MonkeyPatch):
    """CLI runner on a fresh database, with a console wide enough for every table."""
    monkeypatch.setattr("ledgerfolio.cli.main.console", Console(width=200))
    return cli_runner


def invoke(runner, *args):
    return runner.invoke(cli, list(args), catch_exceptions=False)


@pytest.fixture
def funded(runner):
    invoke(runner, "portfolio", "create", "Retirement")
    invoke(runner, "prices", "set", "AAPL", "150")
    invoke(runner, "portfolio", "add", "Retirement", "AAPL", "-q", "10", "-p", "100", "-d", "2024-01-02")
    invoke(runner, "portfolio", "add", "Retirement", "AAPL", "-q", "10", "-p", "120", "-d", "2024-02-01")
    return runner


class TestCLIMain:
    def test_help(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "Ledgerfolio" in result.output
        for group in ("Ledger", "Valuation", "Setup"):
            assert group in result.output

    def test_version(self, cli_runner):
        result = cli_runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "ledgerfolio" in result.output.lower()

    def test_db_init(self, runner, tmp_db):
        result = invoke(runner, "db", "init")

        assert result.exit_code == 0
        assert tmp_db.exists()


class TestPortfolioCommands:
    def test_create_and_list(self, runner):
        assert invoke(runner, "portfolio", "create", "Retirement").exit_code == 0

        result = invoke(runner, "portfolio", "list")

        assert "Retirement" in result.output

    def test_holdings(self, funded):
        result = invoke(funded, "portfolio", "holdings", "Retirement")

        assert result.exit_code == 0
        assert "AAPL" in result.output
        assert "$3,000.00" in result.output

    def test_sell_reports_realized_gain(self, funded):
        result = invoke(
            funded, "portfolio", "sell", "Retirement", "AAPL", "-q", "5", "-p", "130", "-d", "2024-03-01"
        )

        assert result.exit_code == 0
        assert "Realized Gain" in result.output
        assert "+$150.00" in result.output

    def test_oversell_exits_with_error(self, funded):
        result = invoke(
            funded, "portfolio", "sell", "Retirement", "AAPL", "-q", "50", "-p", "130", "-d", "2024-03-01"
        )

        assert result.exit_code == 1
        assert "Oversell" in result.output
        assert PortfolioManager().get_holdings("Retirement")[0].quantity == 20

    def test_unknown_lot(self, funded):
        result = invoke(
            funded, "portfolio", "sell", "Retirement", "AAPL", "-q", "1", "-p", "130", "--lot", "lot-missing"
        )

        assert result.exit_code == 1
        assert "Unknown lot" in result.output

    def test_unknown_portfolio(self, runner):
        result = invoke(runner, "portfolio", "holdings", "Nope")

        assert result.exit_code == 1
        assert "Not found" in result.output

    def test_malformed_quantity(self, runner):
        invoke(runner, "portfolio", "create", "Retirement")

        result = invoke(runner, "portfolio", "add", "Retirement", "AAPL", "-q", "ten", "-p", "1")

        assert result.exit_code == 1
        assert "Malformed decimal" in result.output

    def test_espp_purchase(self, runner):
        invoke(runner, "portfolio", "create", "Retirement")

        result = invoke(
            runner,
            "portfolio", "add", "Retirement", "ACME",
            "--type", "espp_purchase",
            "-q", "20", "-p", "72.25", "-d", "2024-01-02",
            "--discount", "15", "--bargain-element", "12.75",
        )
        lots = invoke(runner, "portfolio", "lots", "Retirement", "ACME")

        assert result.exit_code == 0
        assert "espp" in lots.output

    def test_edit_and_delete(self, funded):
        event = PortfolioManager().list_transactions("Retirement")[0]

        edited = invoke(funded, "portfolio", "edit", event.id, "-q", "5")
        deleted = invoke(funded, "portfolio", "delete", event.id, "--yes")

        assert edited.exit_code == 0
        assert deleted.exit_code == 0
        assert len(PortfolioManager().list_transactions("Retirement")) == 1

    def test_delete_aborted(self, funded):
        event = PortfolioManager().list_transactions("Retirement")[0]

        result = funded.invoke(cli, ["portfolio", "delete", event.id], input="n\n")

        assert result.exit_code == 1
        assert len(PortfolioManager().list_transactions("Retirement")) == 2

    def test_ownership(self, funded):
        result = invoke(funded, "portfolio", "ownership", "Retirement", "AAPL", "50")

        assert result.exit_code == 0
        assert "$1,500.00" in result.output

    def test_transactions_and_recompute(self, funded):
        assert "buy" in invoke(funded, "portfolio", "transactions", "Retirement").output
        assert "Rebuilt 1 holdings" in invoke(funded, "portfolio", "recompute", "Retirement").output


class TestLiabilityCommands:
    def test_add_pay_and_balance(self, runner):
        invoke(runner, "portfolio", "create", "Household")
        invoke(runner, "liability", "add", "Household", "Car", "10000", "--start", "2024-01-01")
        loan = PortfolioManager().list_liabilities("Household")[0]

        paid = invoke(runner, "liability", "pay", loan.id, "1000", "--interest", "40", "-d", "2024-02-01")
        past = invoke(runner, "liability", "balance", "Household", "--as-of", "2024-01-15")

        assert paid.exit_code == 0
        assert "$9,000.00" in paid.output
        assert "$10,000.00" in past.output

    def test_overpayment_rejected(self, runner):
        invoke(runner, "portfolio", "create", "Household")
        invoke(runner, "liability", "add", "Household", "Card", "100", "--start", "2024-01-01")
        loan = PortfolioManager().list_liabilities("Household")[0]

        result = invoke(runner, "liability", "pay", loan.id, "500", "-d", "2024-02-01")

        assert result.exit_code == 1
        assert "exceeds current balance" in result.output


class TestValuationCommands:
    def test_networth_show(self, funded):
        invoke(funded, "liability", "add", "Retirement", "Loan", "1000", "--start", "2024-01-01")

        result = invoke(funded, "networth", "show", "Retirement", "--as-of", "2024-06-30")

        assert result.exit_code == 0
        assert "$2,000.00" in result.output

    def test_networth_history(self, funded):
        result = invoke(funded, "networth", "history", "Retirement", "--start", "2024-01-01", "--end", "2024-03-01")

        assert result.exit_code == 0
        assert "2024-02-29" in result.output

    def test_performance_flow(self, runner, tmp_path):
        start = date.today() - timedelta(days=4)
        invoke(runner, "portfolio", "create", "Retirement")
        invoke(runner, "prices", "set", "VTI", "110")
        invoke(runner, "prices", "add", "VTI", start.isoformat(), "100")
        invoke(runner, "portfolio", "add", "Retirement", "VTI", "-q", "10", "-p", "100", "-d", start.isoformat())

        recomputed = invoke(runner, "performance", "recompute", "Retirement")
        summary = invoke(runner, "performance", "summary", "Retirement")
        out = tmp_path / "perf.csv"
        exported = invoke(runner, "performance", "export", "Retirement", "-o", str(out))

        assert recomputed.exit_code == 0
        assert "Wrote 5 snapshots" in recomputed.output
        assert summary.exit_code == 0
        assert "Time-weighted return" in summary.output
        assert exported.exit_code == 0
        assert out.read_text().startswith("Date,Portfolio Value")

    def test_performance_summary_empty(self, runner):
        invoke(runner, "portfolio", "create", "Retirement")

        result = invoke(runner, "performance", "summary", "Retirement")

        assert "No snapshots found" in result.output

    def test_tax_exposure_and_aging(self, funded):
        exposure = invoke(funded, "tax", "exposure", "Retirement", "--lots")
        aging = invoke(funded, "tax", "aging", "Retirement", "--days", "400")

        assert exposure.exit_code == 0
        assert "Total estimated tax" in exposure.output
        assert aging.exit_code == 0
