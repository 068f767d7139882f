"""Price commands: current quotes and daily closing prices."""

import click
from rich.console import Console

from ledgerfolio.cli.error_handler import handle_cli_errors
from ledgerfolio.cli.formatting import format_money
from ledgerfolio.core.portfolio.manager import PortfolioManager

DATE = click.DateTime(formats=["%Y-%m-%d"])


@click.group()
def prices() -> None:
    """
    Record asset prices.

    Valuation uses the latest close on or before a date, then the current
    price. Prices are never fetched from the network.

    \b
    Examples:
        ledgerfolio prices set AAPL 190.25
        ledgerfolio prices add AAPL 2024-01-02 185.64
    """
    pass


@prices.command("set")
@click.argument("symbol")
@click.argument("price")
@click.option("--name", default=None, help="Asset name")
@click.pass_context
@handle_cli_errors
def prices_set(ctx: click.Context, symbol: str, price: str, name) -> None:
    """Set the current price of an asset (creates the asset if needed)."""
    console: Console = ctx.obj["console"]
    asset = PortfolioManager().add_asset(symbol, name=name, current_price=price)
    console.print(f"[green]{asset.symbol} current price: {format_money(asset.current_price)}[/green]")


@prices.command("add")
@click.argument("symbol")
@click.argument("price_date", metavar="DATE", type=DATE)
@click.argument("close")
@click.pass_context
@handle_cli_errors
def prices_add(ctx: click.Context, symbol: str, price_date, close: str) -> None:
    """Record the closing price of an asset on a date."""
    console: Console = ctx.obj["console"]
    manager = PortfolioManager()
    manager.add_asset(symbol)
    row = manager.record_price(symbol, price_date.date(), close)
    console.print(
        f"[green]{symbol.upper()} close on {row.price_date.isoformat()}: {format_money(row.close)}[/green]"
    )
