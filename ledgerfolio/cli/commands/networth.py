"""Net worth commands."""

from datetime import date

import click
from rich.console import Console
from rich.table import Table

from ledgerfolio.cli.error_handler import handle_cli_errors
from ledgerfolio.cli.formatting import TABLE_PADDING, format_money, format_signed_money
from ledgerfolio.core.planning.net_worth import get_net_worth_history, net_worth_at_date

DATE = click.DateTime(formats=["%Y-%m-%d"])


@click.group()
def networth() -> None:
    """
    Net worth: holdings minus liabilities, as of a date.

    \b
    Examples:
        ledgerfolio networth show Household --as-of 2024-06-30
        ledgerfolio networth history Household --start 2024-01-01
    """
    pass


@networth.command("show")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.option("--as-of", type=DATE, default=None, help="Valuation date (default: today)")
@click.pass_context
@handle_cli_errors
def networth_show(ctx: click.Context, portfolio_ref: str, as_of) -> None:
    """Show net worth on one date."""
    console: Console = ctx.obj["console"]
    point = net_worth_at_date(portfolio_ref, as_of.date() if as_of else date.today())

    console.print(f"[bold]Net worth on {point.date.isoformat()}[/bold]")
    console.print(f"  [cyan]Assets:[/cyan] {format_money(point.assets)}")
    console.print(f"  [cyan]Liabilities:[/cyan] {format_money(point.liabilities)}")
    console.print(f"  [cyan]Net worth:[/cyan] {format_signed_money(point.net_worth)}")
    if point.missing_prices:
        console.print(f"[yellow]{len(point.missing_prices)} holdings had no price and were valued at zero[/yellow]")


@networth.command("history")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.option("--start", type=DATE, required=True, help="First month (YYYY-MM-DD)")
@click.option("--end", type=DATE, default=None, help="Last month (default: today)")
@click.pass_context
@handle_cli_errors
def networth_history(ctx: click.Context, portfolio_ref: str, start, end) -> None:
    """Show month-end net worth over a range."""
    console: Console = ctx.obj["console"]
    points = get_net_worth_history(
        portfolio_ref, start.date(), end.date() if end else date.today()
    )

    table = Table(title=f"Net worth: {portfolio_ref}", padding=TABLE_PADDING)
    table.add_column("Month end")
    table.add_column("Assets", justify="right")
    table.add_column("Liabilities", justify="right")
    table.add_column("Net worth", justify="right")
    for p in points:
        table.add_row(
            p.date.isoformat(),
            format_money(p.assets),
            format_money(p.liabilities),
            format_signed_money(p.net_worth),
        )
    console.print(table)
