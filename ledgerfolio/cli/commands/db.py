"""Database management commands."""

import logging

import click
from rich.console import Console

from ledgerfolio.cli.error_handler import handle_cli_errors
from ledgerfolio.config import config
from ledgerfolio.db.database import init_db

logger = logging.getLogger(__name__)


@click.group()
def db() -> None:
    """Database management commands.

    Initialize the local SQLite ledger store.
    """
    pass


@db.command()
@click.pass_context
@handle_cli_errors
def init(ctx: click.Context) -> None:
    """
    Initialize the local database.

    Creates every ledger table if it does not exist yet. Safe to run again.

    \b
    Example:
        ledgerfolio db init
    """
    console: Console = ctx.obj["console"]

    config.validate()
    config.ensure_directories()

    with console.status("[bold blue]Initializing database...[/bold blue]"):
        init_db()

    console.print("[green]Database initialized successfully![/green]")
    console.print(f"[dim]Database path: {config.db_path}[/dim]")
