"""
Configuration management for Ledgerfolio.

Centralizes all configuration from environment variables with sensible defaults.
This is the SINGLE SOURCE OF TRUTH for all application configuration.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

VALID_COST_BASIS_METHODS = ("fifo", "lifo", "specific")


@dataclass
class Config:
    """
    Application configuration loaded from environment variables.

    Optional:
        LEDGERFOLIO_DB_PATH: Path to SQLite database
        LEDGERFOLIO_COST_BASIS_METHOD: Default lot disposal discipline (fifo, lifo)
        LEDGERFOLIO_INTERPOLATION_DAYS: Max age of a price before it counts as interpolated
        LEDGERFOLIO_AGING_LOOKBACK_DAYS: Window for flagging lots close to long-term
        LEDGERFOLIO_SHORT_TERM_RATE / LONG_TERM_RATE / STATE_RATE: Tax rates (0-1)
        LEDGERFOLIO_DISPLAY_CURRENCY: Currency code used for display
        LEDGERFOLIO_LOG_LEVEL: Log level for the CLI handler
    """

    # Storage paths
    db_path: Path = field(
        default_factory=lambda: Path(
            os.getenv("LEDGERFOLIO_DB_PATH", "./data/ledgerfolio.db")
        )
    )

    # ========================================================================
    # Ledger replay
    # ========================================================================
    cost_basis_method: str = field(
        default_factory=lambda: os.getenv(
            "LEDGERFOLIO_COST_BASIS_METHOD", "fifo"
        ).lower()
    )

    # ========================================================================
    # Valuation
    # A price older than this many days is flagged as interpolated
    # ========================================================================
    interpolation_threshold_days: int = field(
        default_factory=lambda: int(
            os.getenv("LEDGERFOLIO_INTERPOLATION_DAYS", "3")
        )
    )
    display_currency: str = field(
        default_factory=lambda: os.getenv("LEDGERFOLIO_DISPLAY_CURRENCY", "USD")
    )

    # ========================================================================
    # Tax defaults (fractions, e.g. 0.15 == 15%)
    # ========================================================================
    aging_lookback_days: int = field(
        default_factory=lambda: int(
            os.getenv("LEDGERFOLIO_AGING_LOOKBACK_DAYS", "30")
        )
    )
    short_term_rate: Decimal = field(
        default_factory=lambda: Decimal(
            os.getenv("LEDGERFOLIO_SHORT_TERM_RATE", "0.24")
        )
    )
    long_term_rate: Decimal = field(
        default_factory=lambda: Decimal(
            os.getenv("LEDGERFOLIO_LONG_TERM_RATE", "0.15")
        )
    )
    state_rate: Decimal = field(
        default_factory=lambda: Decimal(
            os.getenv("LEDGERFOLIO_STATE_RATE", "0")
        )
    )

    log_level: str = field(
        default_factory=lambda: os.getenv("LEDGERFOLIO_LOG_LEVEL", "WARNING").upper()
    )

    def __post_init__(self) -> None:
        """Convert string paths to Path objects if needed."""
        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path)

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            LedgerConfigurationError: If a value is ambiguous or out of range.
        """
        from ledgerfolio.core.exceptions import LedgerConfigurationError

        if self.cost_basis_method not in VALID_COST_BASIS_METHODS:
            raise LedgerConfigurationError(
                f"Invalid LEDGERFOLIO_COST_BASIS_METHOD: {self.cost_basis_method!r}. "
                f"Must be one of {', '.join(VALID_COST_BASIS_METHODS)}"
            )
        if self.cost_basis_method == "specific":
            raise LedgerConfigurationError(
                "'specific' cannot be the default cost basis method; "
                "it needs a lot id on every disposal"
            )
        for name in ("short_term_rate", "long_term_rate", "state_rate"):
            rate = getattr(self, name)
            if rate < 0 or rate > 1:
                raise LedgerConfigurationError(
                    f"{name} must be a fraction between 0 and 1, got {rate}"
                )
        if self.interpolation_threshold_days < 0:
            raise LedgerConfigurationError("interpolation_threshold_days cannot be negative")

    def ensure_directories(self) -> None:
        """Create data directories if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance
config = Config()
