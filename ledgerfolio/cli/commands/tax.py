"""Tax commands: unrealized exposure and lots nearing long-term status."""

from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from ledgerfolio.cli.error_handler import handle_cli_errors
from ledgerfolio.cli.formatting import (
    TABLE_PADDING,
    format_money,
    format_quantity,
    format_signed_money,
    print_empty_state,
)
from ledgerfolio.core.portfolio.manager import PortfolioManager
from ledgerfolio.core.tax.exposure import (
    TaxSettings,
    calculate_tax_exposure,
    detect_aging_lots,
)


def _holdings_and_prices(portfolio_ref: str):
    holdings = PortfolioManager().get_holdings(portfolio_ref)
    prices = {h.asset_id: h.current_price for h in holdings}
    symbols = {h.asset_id: h.symbol for h in holdings}
    return holdings, prices, symbols


@click.group()
def tax() -> None:
    """
    Estimated tax on unrealized gains.

    Rates are fractions (0.24 == 24%) and default to the configured
    LEDGERFOLIO_*_RATE values.

    \b
    Examples:
        ledgerfolio tax exposure Retirement
        ledgerfolio tax aging Retirement --days 60
    """
    pass


@tax.command("exposure")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.option("--short-term-rate", default=None, help="Short-term rate override")
@click.option("--long-term-rate", default=None, help="Long-term rate override")
@click.option("--state-rate", default=None, help="State rate override")
@click.option("--lots", "show_lots", is_flag=True, help="List every analyzed lot")
@click.pass_context
@handle_cli_errors
def tax_exposure(
    ctx: click.Context,
    portfolio_ref: str,
    short_term_rate: Optional[str],
    long_term_rate: Optional[str],
    state_rate: Optional[str],
    show_lots: bool,
) -> None:
    """Estimate the tax due if every open lot were sold today."""
    console: Console = ctx.obj["console"]
    holdings, prices, symbols = _holdings_and_prices(portfolio_ref)
    if not holdings:
        print_empty_state(console, "holdings", f"ledgerfolio portfolio add {portfolio_ref} SYMBOL -q QTY -p PRICE")
        return

    overrides = {
        name: value
        for name, value in (
            ("short_term_rate", short_term_rate),
            ("long_term_rate", long_term_rate),
            ("state_rate", state_rate),
        )
        if value is not None
    }
    exposure = calculate_tax_exposure(holdings, prices, TaxSettings(**overrides))

    table = Table(title=f"Tax exposure: {portfolio_ref}", show_header=False, padding=TABLE_PADDING)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Short-term gains", format_money(exposure.short_term_gains))
    table.add_row("Long-term gains", format_money(exposure.long_term_gains))
    table.add_row("Short-term losses", format_money(exposure.short_term_losses))
    table.add_row("Long-term losses", format_money(exposure.long_term_losses))
    table.add_row("Net unrealized", format_signed_money(exposure.net_unrealized_gain))
    table.add_row("Estimated short-term tax", format_money(exposure.estimated_short_term_tax))
    table.add_row("Estimated long-term tax", format_money(exposure.estimated_long_term_tax))
    table.add_row("[bold]Total estimated tax[/bold]", f"[bold]{format_money(exposure.total_estimated_tax)}[/bold]")
    table.add_row("Effective rate", f"{float(exposure.effective_rate) * 100:.2f}%")
    console.print(table)

    if exposure.skipped_assets:
        skipped = ", ".join(symbols.get(a, a) for a in exposure.skipped_assets)
        console.print(f"[yellow]Skipped (no current price): {skipped}[/yellow]")

    if show_lots and exposure.lots:
        lots = Table(title="Lots", padding=TABLE_PADDING)
        lots.add_column("Symbol", style="cyan")
        lots.add_column("Lot", style="dim")
        lots.add_column("Purchased")
        lots.add_column("Qty", justify="right")
        lots.add_column("Cost", justify="right")
        lots.add_column("Value", justify="right")
        lots.add_column("Gain", justify="right")
        lots.add_column("Term")
        lots.add_column("Type")
        for lot in exposure.lots:
            lots.add_row(
                symbols.get(lot.asset_id, lot.asset_id),
                lot.lot_id,
                lot.purchase_date.isoformat(),
                format_quantity(lot.quantity),
                format_money(lot.cost_basis),
                format_money(lot.current_value),
                format_signed_money(lot.unrealized_gain),
                lot.holding_period.value,
                lot.lot_type,
            )
        console.print(lots)


@tax.command("aging")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.option("--days", type=int, default=None, help="Lookback window (default: LEDGERFOLIO_AGING_LOOKBACK_DAYS)")
@click.pass_context
@handle_cli_errors
def tax_aging(ctx: click.Context, portfolio_ref: str, days: Optional[int]) -> None:
    """Short-term lots that turn long-term soon."""
    console: Console = ctx.obj["console"]
    holdings, prices, symbols = _holdings_and_prices(portfolio_ref)
    aging = detect_aging_lots(holdings, prices, lookback_days=days)
    if not aging:
        console.print("[dim]No lots turning long-term in the lookback window.[/dim]")
        return

    table = Table(title="Lots nearing long-term", padding=TABLE_PADDING)
    table.add_column("Symbol", style="cyan")
    table.add_column("Lot", style="dim")
    table.add_column("Purchased")
    table.add_column("Qty", justify="right")
    table.add_column("Days held", justify="right")
    table.add_column("Days left", justify="right", style="yellow")
    table.add_column("Unrealized", justify="right")
    for lot in aging:
        table.add_row(
            symbols.get(lot.asset_id, lot.asset_id),
            lot.lot_id,
            lot.purchase_date.isoformat(),
            format_quantity(lot.quantity),
            str(lot.days_held),
            str(lot.days_until_long_term),
            format_signed_money(lot.unrealized_gain),
        )
    console.print(table)
