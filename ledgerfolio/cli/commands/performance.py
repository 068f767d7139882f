"""Performance commands: snapshot recompute, summary and CSV export."""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ledgerfolio.cli.error_handler import handle_cli_errors
from ledgerfolio.cli.formatting import (
    BORDER_PRIMARY,
    BORDER_WARNING,
    format_money,
    format_percent,
    format_signed_money,
    print_empty_state,
)
from ledgerfolio.core.exceptions import SnapshotCancelledError
from ledgerfolio.core.performance.analytics import export_to_csv, get_summary
from ledgerfolio.core.performance.jobs import JobProgress, JobStatus, SnapshotJob

DATE = click.DateTime(formats=["%Y-%m-%d"])


@click.group()
def performance() -> None:
    """
    Daily performance snapshots and time-weighted returns.

    \b
    Examples:
        ledgerfolio performance recompute Retirement
        ledgerfolio performance summary Retirement --start 2024-01-01
        ledgerfolio performance export Retirement -o performance.csv
    """
    pass


@performance.command("recompute")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.option("--from", "from_date", type=DATE, default=None, help="First date to recompute (default: full history)")
@click.pass_context
@handle_cli_errors
def performance_recompute(ctx: click.Context, portfolio_ref: str, from_date) -> None:
    """Recompute daily snapshots. Ctrl-C cancels without writing anything."""
    console: Console = ctx.obj["console"]

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        console=console,
    ) as progress:
        task = progress.add_task("Replaying ledger...", total=100)

        def update_progress(p: JobProgress) -> None:
            progress.update(
                task,
                completed=p.percent,
                description=f"Day {p.days_done} of {p.days_total}",
            )

        job = SnapshotJob(
            portfolio_ref,
            from_date=from_date.date() if from_date else None,
            on_progress=update_progress,
        ).start()
        try:
            while not job.done:
                job.wait(0.2)
        except KeyboardInterrupt:
            job.cancel()
            job.wait()

    if job.status == JobStatus.CANCELLED:
        raise SnapshotCancelledError(portfolio_ref)
    if job.status == JobStatus.FAILED:
        raise job.error

    result = job.result
    console.print(
        f"[green]Wrote {result.snapshots_written} snapshots "
        f"(replaced {result.snapshots_deleted})[/green]"
    )
    if result.has_interpolated_prices:
        console.print("[yellow]Some days were valued with interpolated prices.[/yellow]")
    if result.missing_prices:
        console.print(
            f"[yellow]No price at all for {len(result.missing_prices)} assets; "
            "they were valued at zero.[/yellow]"
        )


@performance.command("summary")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.option("--start", type=DATE, default=None, help="Window start (YYYY-MM-DD)")
@click.option("--end", type=DATE, default=None, help="Window end (YYYY-MM-DD)")
@click.pass_context
@handle_cli_errors
def performance_summary(ctx: click.Context, portfolio_ref: str, start, end) -> None:
    """Show returns, volatility and drawdown over a window."""
    console: Console = ctx.obj["console"]
    summary = get_summary(
        portfolio_ref,
        start.date() if start else None,
        end.date() if end else None,
    )
    if summary is None:
        print_empty_state(console, "snapshots", f"ledgerfolio performance recompute {portfolio_ref}")
        return

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Window", f"{summary.start_date.isoformat()} to {summary.end_date.isoformat()}")
    table.add_row("Start value", format_money(summary.start_value))
    table.add_row("End value", format_money(summary.end_value))
    table.add_row("Total return", format_signed_money(summary.total_return))
    table.add_row("Total return %", format_percent(summary.total_return_percent, colored=True))
    table.add_row("Time-weighted return", format_percent(summary.twr * 100, colored=True))
    if summary.annualized_return is not None:
        table.add_row("Annualized", format_percent(summary.annualized_return * 100, colored=True))
    table.add_row(
        "Period high",
        f"{format_money(summary.period_high.value)} ({summary.period_high.date.isoformat()})",
    )
    table.add_row(
        "Period low",
        f"{format_money(summary.period_low.value)} ({summary.period_low.date.isoformat()})",
    )
    table.add_row(
        "Best day",
        f"{format_percent(summary.best_day.value, colored=True)} ({summary.best_day.date.isoformat()})",
    )
    table.add_row(
        "Worst day",
        f"{format_percent(summary.worst_day.value, colored=True)} ({summary.worst_day.date.isoformat()})",
    )
    table.add_row("Volatility (annualized)", f"{summary.volatility:.2f}%")
    table.add_row("Max drawdown", format_percent(summary.max_drawdown, colored=True))
    table.add_row("Snapshots", str(summary.snapshot_count))

    console.print(Panel(table, title=f"Performance: {portfolio_ref}", border_style=BORDER_PRIMARY))
    if summary.has_interpolated_prices:
        console.print(
            Panel(
                "Some snapshots in this window used interpolated prices.",
                border_style=BORDER_WARNING,
            )
        )


@performance.command("export")
@click.argument("portfolio_ref", metavar="PORTFOLIO")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write CSV to this file (default: stdout)")
@click.option("--start", type=DATE, default=None, help="Window start (YYYY-MM-DD)")
@click.option("--end", type=DATE, default=None, help="Window end (YYYY-MM-DD)")
@click.pass_context
@handle_cli_errors
def performance_export(
    ctx: click.Context, portfolio_ref: str, output: Optional[Path], start, end
) -> None:
    """Export chart data (daily, weekly or monthly points) as CSV."""
    console: Console = ctx.obj["console"]
    csv_text = export_to_csv(
        portfolio_ref,
        output,
        start.date() if start else None,
        end.date() if end else None,
    )
    if output is None:
        click.echo(csv_text, nl=False)
    else:
        console.print(f"[green]Exported performance data to {output}[/green]")
