"""
Ledgerfolio CLI - portfolio valuation and ledger replay.

Entry point for the command-line interface. Provides commands for:
- Portfolio ledger (transactions, holdings, tax lots, ownership)
- Prices (current quotes and daily closes)
- Liabilities and payments
- Net worth over time
- Performance snapshots, summary and CSV export
- Tax exposure and aging lots
- Database setup

Usage:
    ledgerfolio --help
    ledgerfolio db init
    ledgerfolio portfolio create Retirement
    ledgerfolio portfolio add Retirement AAPL -q 10 -p 150 -d 2024-01-02
    ledgerfolio portfolio sell Retirement AAPL -q 5 -p 175 -d 2024-06-03
    ledgerfolio prices set AAPL 190
    ledgerfolio performance recompute Retirement
    ledgerfolio tax exposure Retirement
"""

import logging
from collections import OrderedDict
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from ledgerfolio import __version__
from ledgerfolio.cli.commands import (
    db,
    liability,
    networth,
    performance,
    portfolio,
    prices,
    tax,
)
from ledgerfolio.config import config


class OrderedGroup(click.Group):
    """Custom group that displays commands in organized categories."""

    COMMAND_GROUPS: OrderedDict[str, list[str]] = OrderedDict([
        ("Ledger", ["portfolio", "prices", "liability"]),
        ("Valuation", ["networth", "performance", "tax"]),
        ("Setup", ["db"]),
    ])

    def format_commands(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Write commands in organized groups."""
        for group_name, cmd_names in self.COMMAND_GROUPS.items():
            commands = []
            for cmd_name in cmd_names:
                cmd = self.get_command(ctx, cmd_name)
                if cmd:
                    help_text = cmd.get_short_help_str(limit=formatter.width)
                    commands.append((cmd_name, help_text))

            if commands:
                with formatter.section(group_name):
                    formatter.write_dl(commands)

# Global console for rich output
console = Console()


def configure_logging(level: str, log_console: Optional[Console] = None) -> None:
    """Route library logging through Rich at the given level."""
    root = logging.getLogger("ledgerfolio")
    root.setLevel(level.upper())
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(
            RichHandler(
                console=log_console or Console(stderr=True),
                show_path=False,
                rich_tracebacks=True,
            )
        )


@click.group(cls=OrderedGroup)
@click.version_option(version=__version__, prog_name="ledgerfolio")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level (default: LEDGERFOLIO_LOG_LEVEL or WARNING)",
)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """
    Ledgerfolio - portfolio valuation and ledger-replay engine.

    Replays your transaction and liability payment history into holdings,
    tax lots, net worth and time-weighted returns.

    \b
    Examples:
        ledgerfolio db init                            # Create the database
        ledgerfolio portfolio create Retirement        # New portfolio
        ledgerfolio portfolio add Retirement VTI -q 10 -p 220
        ledgerfolio portfolio holdings Retirement      # Positions and lots
        ledgerfolio performance summary Retirement     # TWR, volatility, drawdown
        ledgerfolio networth history Retirement --start 2024-01-01
        ledgerfolio tax aging Retirement               # Lots about to go long-term
    """
    ctx.ensure_object(dict)
    ctx.obj["console"] = console
    configure_logging(log_level or config.log_level)


# Register command groups
cli.add_command(portfolio.portfolio)
cli.add_command(prices.prices)
cli.add_command(liability.liability)
cli.add_command(networth.networth)
cli.add_command(performance.performance)
cli.add_command(tax.tax)
cli.add_command(db.db)


def main() -> None:
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
