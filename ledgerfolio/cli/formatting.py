"""Centralized formatting utilities for CLI output.

Provides consistent colors, money/percent formatting and empty states across
all CLI commands.
"""

from decimal import Decimal
from typing import Optional, Union

from rich.console import Console

from ledgerfolio.config import config

# =============================================================================
# Standard Padding & Borders
# =============================================================================

TABLE_PADDING = (0, 2)

BORDER_PRIMARY = "blue"      # Main content panels
BORDER_WARNING = "yellow"    # Warning panels

# Missing value indicator
MISSING = "-"

Number = Union[Decimal, float, int]

_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥"}


def gain_color(value: Optional[Number]) -> str:
    """green for gains, red for losses, white for flat or unknown."""
    if value is None or value == 0:
        return "white"
    return "green" if value > 0 else "red"


def format_money(value: Optional[Number], currency: Optional[str] = None) -> str:
    """Format an amount with the display currency symbol and 2 decimals."""
    if value is None:
        return MISSING
    code = (currency or config.display_currency).upper()
    symbol = _CURRENCY_SYMBOLS.get(code)
    amount = f"{abs(float(value)):,.2f}"
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{amount}" if symbol else f"{sign}{amount} {code}"


def format_signed_money(value: Optional[Number], currency: Optional[str] = None) -> str:
    """Money with color markup and an explicit + for gains."""
    if value is None:
        return MISSING
    color = gain_color(value)
    prefix = "+" if value > 0 else ""
    return f"[{color}]{prefix}{format_money(value, currency)}[/{color}]"


def format_percent(value: Optional[Number], colored: bool = False) -> str:
    """Format a percentage value (already x100) with 2 decimals."""
    if value is None:
        return MISSING
    text = f"{float(value):+.2f}%"
    if not colored:
        return text
    color = gain_color(value)
    return f"[{color}]{text}[/{color}]"


def format_quantity(value: Optional[Number]) -> str:
    """Quantities keep their precision but drop trailing zeros."""
    if value is None:
        return MISSING
    if isinstance(value, Decimal):
        text = format(value.normalize(), "f")
        return text if text != "-0" else "0"
    return f"{value:g}"


def format_missing(value, default: str = MISSING):
    """Return value or standard missing indicator."""
    return value if value is not None else default


def print_next_steps(console: Console, steps: list[tuple[str, str]]) -> None:
    """
    Print standardized next-step hints.

    Args:
        console: Rich console instance
        steps: List of (label, command) tuples
    """
    console.print()
    console.print("[dim]Next steps:[/dim]")
    for label, cmd in steps:
        console.print(f"  [dim]{label}:[/dim]  {cmd}")


def print_empty_state(console: Console, entity: str, hint: str) -> None:
    """
    Print standardized empty state message.

    Args:
        console: Rich console instance
        entity: What's empty (e.g., "holdings", "snapshots")
        hint: Command to get started
    """
    console.print(f"[yellow]No {entity} found.[/yellow]")
    console.print(f"[dim]Get started: {hint}[/dim]")
