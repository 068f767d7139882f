"""Portfolio ledger commands: transactions, holdings, tax lots and ownership."""

import logging
from datetime import date
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ledgerfolio.cli.error_handler import handle_cli_errors
from ledgerfolio.cli.formatting import (
    TABLE_PADDING,
    format_money,
    format_percent,
    format_quantity,
    format_signed_money,
    print_empty_state,
    print_next_steps,
)
from ledgerfolio.core.performance.snapshot_service import (
    SnapshotTrigger,
    get_latest_snapshot,
    handle_snapshot_trigger,
)
from ledgerfolio.core.portfolio.manager import PortfolioManager
from ledgerfolio.core.types import (
    CostBasisMethod,
    LedgerEvent,
    PlanMetadata,
    TransactionMetadata,
    TransactionType,
    to_decimal,
)

logger = logging.getLogger(__name__)

DATE = click.DateTime(formats=["%Y-%m-%d"])


def _refresh_snapshots(
    console: Console,
    portfolio_ref: str,
    trigger: SnapshotTrigger,
    event: LedgerEvent,
) -> None:
    """Keep existing snapshots in step with the ledger."""
    if get_latest_snapshot(portfolio_ref) is None:
        return
    result = handle_snapshot_trigger(portfolio_ref, trigger, event)
    console.print(f"[dim]Recomputed {result.snapshots_written} snapshots[/dim]")


def _print_event(console: Console, verb: str, symbol: str, event: LedgerEvent) -> None:
    console.print(f"[green]{verb} {event.type.value} of {symbol.upper()}[/green]")
    console.print(f"  Transaction: {event.id}")
    console.print(f"  Date: {event.date.isoformat()}")
    console.print(f"  Quantity: {format_quantity(event.quantity)}")
    if event.price:
        console.print(f"  Price: {format_money(event.price)}")
    if event.fees:
        console.print(f"  Fees: {format_money(event.fees)}")
    console.print(f"  Total: {format_money(event.total_amount)}")


@click.group()
@click.pass_context
def portfolio(ctx: click.Context) -> None:
    """
    Manage portfolios and their transaction ledger.

    Every change to the ledger rebuilds the affected holding and its tax
    lots from the full history.

    \b
    Examples:
        ledgerfolio portfolio create Retirement
        ledgerfolio portfolio add Retirement AAPL -q 10 -p 150.00 -d 2024-01-02
        ledgerfolio portfolio sell Retirement AAPL -q 5 -p 175.00 --method lifo
        ledgerfolio portfolio holdings Retirement
        ledgerfolio portfolio lots Retirement AAPL
    """
    pass


@portfolio.command("create")
@click.argument("name")
@click.option("--currency", default="USD", help="Base currency code")
@click.pass_context
@handle_cli_errors
def portfolio_create(ctx: click.Context, name: str, currency: str) -> None:
    """Create a new portfolio."""
    console: Console = ctx.obj["console"]
    created = PortfolioManager().create_portfolio(name, base_currency=currency)
    console.print(f"[green]Created portfolio {created.name}[/green]")
    console.print(f"[dim]id: {created.id}[/dim]")
    print_next_steps(
        console,
        [("Add a purchase", f"ledgerfolio portfolio add {created.name} SYMBOL -q QTY -p PRICE")],
    )


@portfolio.command("list")
@click.pass_context
@handle_cli_errors
def portfolio_list(ctx: click.Context) -> None:
    """List portfolios."""
    console: Console = ctx.obj["console"]
    portfolios = PortfolioManager().list_portfolios()
    if not portfolios:
        print_empty_state(console, "portfolios", "ledgerfolio portfolio create NAME")
        return

    table = Table(title="Portfolios", padding=TABLE_PADDING)
    table.add_column("Name", style="cyan")
    table.add_column("Currency")
    table.add_column("Id", style="dim")
    for p in portfolios:
        table.add_row(p.name, p.base_currency, p.id)
    console.print(table)


@portfolio.command("add")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.argument("symbol")
@click.option("--quantity", "-q", required=True, help="Units (split ratio for --type split)")
@click.option("--price", "-p", default="0", help="Price per unit, excluding fees")
@click.option("--date", "-d", "tx_date", type=DATE, default=None, help="Transaction date (YYYY-MM-DD)")
@click.option("--fees", default="0", help="Fees and commissions")
@click.option(
    "--type",
    "tx_type",
    type=click.Choice([t.value for t in TransactionType]),
    default=TransactionType.BUY.value,
    help="Transaction type",
)
@click.option("--total", default=None, help="Total amount (default: derived from quantity, price and fees)")
@click.option("--grant-date", type=DATE, default=None, help="ESPP/RSU grant date")
@click.option("--vesting-date", type=DATE, default=None, help="RSU vesting date")
@click.option("--discount", default=None, help="ESPP discount percent")
@click.option("--bargain-element", default=None, help="ESPP per-unit bargain element")
@click.option("--withheld", default=None, help="RSU shares withheld for tax")
@click.option("--notes", default=None, help="Transaction notes")
@click.pass_context
@handle_cli_errors
def portfolio_add(
    ctx: click.Context,
    portfolio_ref: str,
    symbol: str,
    quantity: str,
    price: str,
    tx_date,
    fees: str,
    tx_type: str,
    total: Optional[str],
    grant_date,
    vesting_date,
    discount: Optional[str],
    bargain_element: Optional[str],
    withheld: Optional[str],
    notes: Optional[str],
) -> None:
    """Record a transaction (buy by default)."""
    console: Console = ctx.obj["console"]
    kind = TransactionType.parse(tx_type)

    plan = None
    if kind.is_plan_grant:
        plan = PlanMetadata(
            plan_type="espp" if kind == TransactionType.ESPP_PURCHASE else "rsu",
            grant_date=grant_date.date() if grant_date else None,
            vesting_date=vesting_date.date() if vesting_date else None,
            discount_percent=to_decimal(discount, "discount") if discount else None,
            withheld_shares=to_decimal(withheld, "withheld") if withheld else None,
            bargain_element=to_decimal(bargain_element, "bargain_element") if bargain_element else None,
        )

    event = PortfolioManager().add_transaction(
        portfolio_ref,
        symbol,
        kind,
        tx_date.date() if tx_date else date.today(),
        quantity,
        price=price,
        fees=fees,
        total_amount=total,
        metadata=TransactionMetadata(plan=plan, notes=notes),
    )
    _print_event(console, "Recorded", symbol, event)
    _refresh_snapshots(console, portfolio_ref, SnapshotTrigger.TRANSACTION_ADDED, event)


@portfolio.command("sell")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.argument("symbol")
@click.option("--quantity", "-q", required=True, help="Units to sell")
@click.option("--price", "-p", required=True, help="Sale price per unit")
@click.option("--date", "-d", "tx_date", type=DATE, default=None, help="Sale date (YYYY-MM-DD)")
@click.option("--fees", default="0", help="Fees and commissions")
@click.option(
    "--method",
    type=click.Choice([m.value for m in CostBasisMethod]),
    default=None,
    help="Cost basis method for this sale (default: LEDGERFOLIO_COST_BASIS_METHOD)",
)
@click.option("--lot", "lot_id", default=None, help="Tax lot id to sell from (specific lot)")
@click.option("--transfer", is_flag=True, help="Record a transfer out instead of a sale")
@click.pass_context
@handle_cli_errors
def portfolio_sell(
    ctx: click.Context,
    portfolio_ref: str,
    symbol: str,
    quantity: str,
    price: str,
    tx_date,
    fees: str,
    method: Optional[str],
    lot_id: Optional[str],
    transfer: bool,
) -> None:
    """Record a sale, consuming tax lots FIFO, LIFO or by lot id."""
    console: Console = ctx.obj["console"]
    manager = PortfolioManager()

    metadata = TransactionMetadata(
        tax_lot_id=lot_id,
        cost_basis_method=CostBasisMethod.parse(method) if method else None,
    )
    event = manager.add_transaction(
        portfolio_ref,
        symbol,
        TransactionType.TRANSFER_OUT if transfer else TransactionType.SELL,
        tx_date.date() if tx_date else date.today(),
        quantity,
        price=price,
        fees=fees,
        metadata=metadata,
    )
    _print_event(console, "Recorded", symbol, event)

    dispositions = [
        d for d in manager.get_dispositions(portfolio_ref, symbol)
        if d.disposal_transaction_id == event.id
    ]
    if dispositions:
        realized = sum(d.realized_gain for d in dispositions)
        console.print(f"  Realized Gain: {format_signed_money(realized)}")
        for d in dispositions:
            term = "long" if d.is_long_term else "short"
            console.print(
                f"  [dim]{d.lot_id}: {format_quantity(d.quantity)} @ "
                f"{format_money(d.cost_basis_per_unit)} ({term}-term)[/dim]"
            )
    _refresh_snapshots(console, portfolio_ref, SnapshotTrigger.TRANSACTION_ADDED, event)


@portfolio.command("edit")
@click.argument("transaction_id")
@click.option("--quantity", "-q", default=None, help="New quantity")
@click.option("--price", "-p", default=None, help="New price per unit")
@click.option("--date", "-d", "tx_date", type=DATE, default=None, help="New date (YYYY-MM-DD)")
@click.option("--fees", default=None, help="New fees")
@click.pass_context
@handle_cli_errors
def portfolio_edit(
    ctx: click.Context,
    transaction_id: str,
    quantity: Optional[str],
    price: Optional[str],
    tx_date,
    fees: Optional[str],
) -> None:
    """Replace a transaction with an edited copy (same id)."""
    console: Console = ctx.obj["console"]
    changes = {}
    if quantity is not None:
        changes["quantity"] = quantity
    if price is not None:
        changes["price"] = price
    if fees is not None:
        changes["fees"] = fees
    if tx_date is not None:
        changes["date"] = tx_date.date()
    if not changes:
        console.print("[yellow]Nothing to change[/yellow]")
        return

    change = PortfolioManager().edit_transaction(transaction_id, **changes)
    console.print(f"[green]Updated transaction {transaction_id}[/green]")
    portfolio_id = change.after.portfolio_id
    if get_latest_snapshot(portfolio_id) is not None:
        result = handle_snapshot_trigger(
            portfolio_id, SnapshotTrigger.TRANSACTION_MODIFIED, change.after, change.before
        )
        console.print(f"[dim]Recomputed {result.snapshots_written} snapshots[/dim]")


@portfolio.command("delete")
@click.argument("transaction_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
@handle_cli_errors
def portfolio_delete(ctx: click.Context, transaction_id: str, yes: bool) -> None:
    """Delete a transaction from the ledger."""
    console: Console = ctx.obj["console"]
    if not yes:
        click.confirm(f"Delete transaction {transaction_id}?", abort=True)

    event = PortfolioManager().delete_transaction(transaction_id)
    console.print(f"[green]Deleted {event.type.value} of {format_quantity(event.quantity)} on {event.date}[/green]")
    _refresh_snapshots(console, event.portfolio_id, SnapshotTrigger.TRANSACTION_DELETED, event)


@portfolio.command("transactions")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.option("--symbol", default=None, help="Only this asset")
@click.pass_context
@handle_cli_errors
def portfolio_transactions(ctx: click.Context, portfolio_ref: str, symbol: Optional[str]) -> None:
    """List the transaction ledger in replay order."""
    console: Console = ctx.obj["console"]
    events = PortfolioManager().list_transactions(portfolio_ref, symbol)
    if not events:
        print_empty_state(console, "transactions", f"ledgerfolio portfolio add {portfolio_ref} SYMBOL -q QTY -p PRICE")
        return

    table = Table(title=f"Transactions: {portfolio_ref}", padding=TABLE_PADDING)
    table.add_column("Date")
    table.add_column("Type")
    table.add_column("Quantity", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Fees", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Id", style="dim")
    for e in events:
        table.add_row(
            e.date.isoformat(),
            e.type.value,
            format_quantity(e.quantity),
            format_money(e.price),
            format_money(e.fees),
            format_money(e.total_amount),
            e.id,
        )
    console.print(table)


@portfolio.command("holdings")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.pass_context
@handle_cli_errors
def portfolio_holdings(ctx: click.Context, portfolio_ref: str) -> None:
    """Show current holdings with cost basis and unrealized gain."""
    console: Console = ctx.obj["console"]
    holdings = PortfolioManager().get_holdings(portfolio_ref)
    if not holdings:
        print_empty_state(console, "holdings", f"ledgerfolio portfolio add {portfolio_ref} SYMBOL -q QTY -p PRICE")
        return

    table = Table(title=f"Holdings: {portfolio_ref}", padding=TABLE_PADDING)
    table.add_column("Symbol", style="cyan")
    table.add_column("Quantity", justify="right")
    table.add_column("Avg Cost", justify="right")
    table.add_column("Cost Basis", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Value", justify="right")
    table.add_column("Gain", justify="right")
    table.add_column("Gain %", justify="right")
    table.add_column("Own %", justify="right")
    table.add_column("Lots", justify="right")

    total_value = sum(h.current_value for h in holdings)
    total_cost = sum(h.cost_basis for h in holdings)
    for h in holdings:
        table.add_row(
            h.symbol,
            format_quantity(h.quantity),
            format_money(h.average_cost),
            format_money(h.cost_basis),
            format_money(h.current_price),
            format_money(h.current_value),
            format_signed_money(h.unrealized_gain),
            format_percent(h.unrealized_gain_percent, colored=True),
            format_quantity(h.ownership_percentage),
            str(len(h.lots)),
        )
    console.print(table)
    console.print(
        f"[cyan]Total value:[/cyan] {format_money(total_value)}   "
        f"[cyan]Cost basis:[/cyan] {format_money(total_cost)}   "
        f"[cyan]Gain:[/cyan] {format_signed_money(total_value - total_cost)}"
    )


@portfolio.command("lots")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.argument("symbol")
@click.pass_context
@handle_cli_errors
def portfolio_lots(ctx: click.Context, portfolio_ref: str, symbol: str) -> None:
    """Show the open tax lots of one holding."""
    console: Console = ctx.obj["console"]
    lots = PortfolioManager().get_lots(portfolio_ref, symbol)
    if not lots:
        print_empty_state(console, f"open lots of {symbol.upper()}", f"ledgerfolio portfolio add {portfolio_ref} {symbol.upper()} -q QTY -p PRICE")
        return

    table = Table(title=f"Tax lots: {symbol.upper()}", padding=TABLE_PADDING)
    table.add_column("Lot", style="dim")
    table.add_column("Purchased")
    table.add_column("Price", justify="right")
    table.add_column("Original", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Type")
    for lot in lots:
        table.add_row(
            lot.id,
            lot.purchase_date.isoformat(),
            format_money(lot.purchase_price),
            format_quantity(lot.original_quantity),
            format_quantity(lot.remaining_quantity),
            lot.plan.plan_type if lot.plan else "standard",
        )
    console.print(table)


@portfolio.command("recompute")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.pass_context
@handle_cli_errors
def portfolio_recompute(ctx: click.Context, portfolio_ref: str) -> None:
    """Rebuild every holding of a portfolio from its ledger."""
    console: Console = ctx.obj["console"]
    with console.status("[bold blue]Replaying ledger...[/bold blue]"):
        valuations = PortfolioManager().recompute_holdings(portfolio_ref)
    console.print(Panel.fit(f"[bold]Rebuilt {len(valuations)} holdings[/bold]"))


@portfolio.command("ownership")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.argument("symbol")
@click.argument("percentage")
@click.pass_context
@handle_cli_errors
def portfolio_ownership(ctx: click.Context, portfolio_ref: str, symbol: str, percentage: str) -> None:
    """Set the share (0-100] of a holding attributed to this portfolio."""
    console: Console = ctx.obj["console"]
    detail = PortfolioManager().set_ownership_percentage(portfolio_ref, symbol, percentage)
    console.print(
        f"[green]{detail.symbol} ownership set to {format_quantity(detail.ownership_percentage)}%[/green]"
    )
    console.print(f"  Value: {format_money(detail.current_value)}")
