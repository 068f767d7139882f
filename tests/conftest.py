"""
Pytest configuration and shared fixtures for Ledgerfolio tests.

Provides a temporary database per test, ledger event factories and a Click
runner for CLI tests.
"""

import itertools
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, Generator

import pytest
from click.testing import CliRunner

from ledgerfolio.core.types import LedgerEvent, TransactionMetadata


# ==============================================================================
# Autouse Fixtures - Run automatically for all tests
# ==============================================================================


@pytest.fixture(autouse=True)
def set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pin configuration that tests rely on, regardless of the developer's .env."""
    from ledgerfolio.config import config

    monkeypatch.setattr(config, "cost_basis_method", "fifo")
    monkeypatch.setattr(config, "interpolation_threshold_days", 3)
    monkeypatch.setattr(config, "display_currency", "USD")
    monkeypatch.setattr(config, "aging_lookback_days", 30)
    monkeypatch.setattr(config, "short_term_rate", Decimal("0.24"))
    monkeypatch.setattr(config, "long_term_rate", Decimal("0.15"))
    monkeypatch.setattr(config, "state_rate", Decimal("0"))


# ==============================================================================
# Database Fixtures
# ==============================================================================


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> Path:
    """Provide a temporary database path."""
    return tmp_path / "test_ledgerfolio.db"


@pytest.fixture
def tmp_db(tmp_db_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """
    Set up a temporary database for testing.

    Monkeypatches the database path and initializes the schema.
    """
    monkeypatch.setenv("LEDGERFOLIO_DB_PATH", str(tmp_db_path))

    # The config singleton reads env at import time, so patch it directly
    from ledgerfolio.config import config

    monkeypatch.setattr(config, "db_path", tmp_db_path)

    from ledgerfolio.db.database import reset_engine

    reset_engine()

    from ledgerfolio.db import init_db

    init_db()

    yield tmp_db_path

    reset_engine()
    if tmp_db_path.exists():
        tmp_db_path.unlink()


@pytest.fixture
def manager(tmp_db: Path):
    """PortfolioManager on a fresh database."""
    from ledgerfolio.core.portfolio.manager import PortfolioManager

    return PortfolioManager()


@pytest.fixture
def portfolio(manager):
    """An empty portfolio named Retirement."""
    return manager.create_portfolio("Retirement")


# ==============================================================================
# Ledger Event Factories
# ==============================================================================


@pytest.fixture
def make_event() -> Callable[..., LedgerEvent]:
    """
    Factory for in-memory ledger events.

    Ids and sequences increase with each call so same-day events replay in
    creation order.
    """
    counter = itertools.count(1)

    def _make(
        type: str,
        day,
        quantity="0",
        price="0",
        fees="0",
        asset_id: str = "aapl",
        total_amount=None,
        metadata: TransactionMetadata = None,
        id: str = None,
    ) -> LedgerEvent:
        n = next(counter)
        return LedgerEvent.create(
            id=id or f"t{n}",
            portfolio_id="p1",
            asset_id=asset_id,
            type=type,
            date=day if isinstance(day, date) else date.fromisoformat(day),
            quantity=quantity,
            price=price,
            fees=fees,
            total_amount=total_amount,
            metadata=metadata,
            sequence=n,
        )

    return _make


# ==============================================================================
# CLI Fixtures
# ==============================================================================


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI test runner."""
    return CliRunner()
