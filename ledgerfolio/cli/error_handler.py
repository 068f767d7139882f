"""Shared CLI error handling decorator.

Catches the ledger's error taxonomy in one place so every command reports
failures the same way. Commands can still handle command-specific
exceptions internally before the decorator catches the rest.

Usage:
    @click.command()
    @click.pass_context
    @handle_cli_errors
    def my_command(ctx, ...):
        ...
"""

import functools
import logging

import click
from rich.console import Console

from ledgerfolio.core.exceptions import (
    LedgerConfigurationError,
    LedgerIntegrityError,
    LotNotFoundError,
    OversellError,
    RecordNotFoundError,
    SnapshotCancelledError,
)

logger = logging.getLogger(__name__)


def handle_cli_errors(f):
    """Decorator that catches ledger exceptions with Rich-formatted output.

    Integrity errors, configuration errors and bad input exit with code 1.
    Unexpected exceptions are logged with a traceback and also exit with 1.

    Must be applied AFTER @click.pass_context so the first positional arg
    is the Click context (which provides the console via ctx.obj["console"]).
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        # Get console from Click context if available
        ctx = click.get_current_context(silent=True)
        console = ctx.obj["console"] if ctx and ctx.obj and "console" in ctx.obj else Console()

        try:
            return f(*args, **kwargs)
        except SystemExit:
            raise  # Don't intercept explicit exits
        except OversellError as e:
            console.print(f"[red]Oversell:[/red] {e}")
            console.print("[yellow]Nothing was recorded; holdings are unchanged.[/yellow]")
            raise SystemExit(1)
        except LotNotFoundError as e:
            console.print(f"[red]Unknown lot:[/red] {e}")
            console.print("[dim]List open lots with: ledgerfolio portfolio lots PORTFOLIO SYMBOL[/dim]")
            raise SystemExit(1)
        except RecordNotFoundError as e:
            console.print(f"[red]Not found:[/red] {e}")
            raise SystemExit(1)
        except LedgerIntegrityError as e:
            console.print(f"[red]Ledger integrity error:[/red] {e}")
            raise SystemExit(1)
        except LedgerConfigurationError as e:
            console.print(f"[red]Configuration error:[/red] {e}")
            raise SystemExit(1)
        except SnapshotCancelledError as e:
            console.print(f"[yellow]{e}[/yellow]")
            raise SystemExit(1)
        except ValueError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise SystemExit(1)
        except (click.exceptions.Exit, click.exceptions.Abort):
            raise  # Don't intercept Click exits or aborted prompts
        except Exception as e:
            logger.exception("Unexpected error in %s command", f.__name__)
            console.print(f"[red]Unexpected error:[/red] {e}")
            raise SystemExit(1)

    return wrapper
