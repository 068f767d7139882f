"""Liability commands: loans, payments and reconstructed balances."""

from datetime import date
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from ledgerfolio.cli.error_handler import handle_cli_errors
from ledgerfolio.cli.formatting import TABLE_PADDING, format_money, print_empty_state
from ledgerfolio.core.planning.liabilities import balance_at_date, liability_balance_history
from ledgerfolio.core.portfolio.manager import PortfolioManager

DATE = click.DateTime(formats=["%Y-%m-%d"])


@click.group()
def liability() -> None:
    """
    Track liabilities and their payments.

    Only the current balance is stored; past balances are rebuilt from the
    payment log.

    \b
    Examples:
        ledgerfolio liability add Household Mortgage 320000 --start 2022-05-01 --rate 5.1
        ledgerfolio liability pay LIABILITY_ID 450 --interest 1350 -d 2024-06-01
        ledgerfolio liability balance Household --as-of 2023-12-31
    """
    pass


@liability.command("add")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.argument("name")
@click.argument("balance")
@click.option("--start", "start_date", type=DATE, required=True, help="Start date (YYYY-MM-DD)")
@click.option("--rate", default="0", help="Annual interest rate, percent")
@click.option("--payment", default="0", help="Scheduled monthly payment")
@click.option("--term", "term_months", type=int, default=None, help="Term in months")
@click.option("--type", "liability_type", default="loan", help="mortgage, auto, student, credit, loan")
@click.pass_context
@handle_cli_errors
def liability_add(
    ctx: click.Context,
    portfolio_ref: str,
    name: str,
    balance: str,
    start_date,
    rate: str,
    payment: str,
    term_months: Optional[int],
    liability_type: str,
) -> None:
    """Add a liability with its current balance."""
    console: Console = ctx.obj["console"]
    created = PortfolioManager().add_liability(
        portfolio_ref,
        name,
        balance,
        start_date.date(),
        interest_rate=rate,
        payment=payment,
        term_months=term_months,
        liability_type=liability_type,
    )
    console.print(f"[green]Added liability {created.name}: {format_money(created.balance)}[/green]")
    console.print(f"[dim]id: {created.id}[/dim]")


@liability.command("pay")
@click.argument("liability_id")
@click.argument("principal")
@click.option("--interest", default="0", help="Interest portion of the payment")
@click.option("--date", "-d", "pay_date", type=DATE, default=None, help="Payment date (YYYY-MM-DD)")
@click.pass_context
@handle_cli_errors
def liability_pay(
    ctx: click.Context, liability_id: str, principal: str, interest: str, pay_date
) -> None:
    """Record a payment against a liability."""
    console: Console = ctx.obj["console"]
    payment = PortfolioManager().record_liability_payment(
        liability_id,
        pay_date.date() if pay_date else date.today(),
        principal,
        interest,
    )
    console.print(f"[green]Recorded payment on {payment.date.isoformat()}[/green]")
    console.print(f"  Principal: {format_money(payment.principal_paid)}")
    console.print(f"  Interest: {format_money(payment.interest_paid)}")
    console.print(f"  Remaining balance: {format_money(payment.remaining_balance)}")


@liability.command("balance")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.option("--as-of", type=DATE, default=None, help="Balance date (default: today)")
@click.option("--since", type=DATE, default=None, help="Show balance history from this date")
@click.pass_context
@handle_cli_errors
def liability_balance(ctx: click.Context, portfolio_ref: str, as_of, since) -> None:
    """Show liability balances, reconstructed as of a date."""
    console: Console = ctx.obj["console"]
    manager = PortfolioManager()
    liabilities = manager.list_liabilities(portfolio_ref)
    if not liabilities:
        print_empty_state(console, "liabilities", f"ledgerfolio liability add {portfolio_ref} NAME BALANCE --start YYYY-MM-DD")
        return

    target = as_of.date() if as_of else date.today()
    table = Table(title=f"Liabilities as of {target.isoformat()}", padding=TABLE_PADDING)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Current", justify="right")
    table.add_column("As of", justify="right")
    table.add_column("Id", style="dim")

    total = 0
    for row in liabilities:
        payments = manager.get_liability_payments(row.id)
        balance = balance_at_date(row, payments, target)
        total += balance
        table.add_row(row.name, row.liability_type, format_money(row.balance), format_money(balance), row.id)
    console.print(table)
    console.print(f"[cyan]Total:[/cyan] {format_money(total)}")

    if since is not None:
        for row in liabilities:
            points = liability_balance_history(
                row, manager.get_liability_payments(row.id), since.date(), target
            )
            console.print()
            console.print(f"[bold]{row.name}[/bold]")
            for point in points:
                console.print(f"  {point.date.isoformat()}  {format_money(point.balance)}")
