"""
Backup management CLI commands.

Provides commands for listing and rolling back site database backups.
"""

from __future__ import annotations

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cmsops.config.commands import get_setting
from cmsops.core.backup import backup_database, list_backups, rollback_database
from cmsops.core.config import get_paths

console = Console()


def backup_site_database() -> None:
    """Back up site.db before a write batch, honouring retention settings."""
    paths = get_paths()
    backup_path = backup_database(
        paths.database,
        paths.backups,
        keep_backups=int(get_setting("backup.keep_count")),
        keep_days=int(get_setting("backup.keep_days")),
    )
    if backup_path is not None:
        console.print(f"[dim]Backed up database to {backup_path.name}[/dim]")


def _format_age(days: float) -> str:
    """Format age in human-readable form."""
    if days < 1:
        hours = days * 24
        if hours < 1:
            return f"{int(hours * 60)}m ago"
        return f"{int(hours)}h ago"
    elif days < 7:
        return f"{int(days)}d ago"
    elif days < 30:
        return f"{int(days / 7)}w ago"
    else:
        return f"{int(days / 30)}mo ago"


@click.group()
def backup():
    """Manage site database backups.

    Backups are created automatically before localization batches.
    """
    pass


@backup.command(name="list")
@click.option("-n", "--limit", type=int, default=10, help="Maximum number of backups to show")
@click.option("--all", "show_all", is_flag=True, help="Show all backups (no limit)")
def list_cmd(limit: int, show_all: bool):
    """List available backups, newest first."""
    paths = get_paths()
    backups = list_backups(paths.backups, paths.database.stem)

    if not backups:
        console.print("[dim]No backups found[/dim]")
        return

    display_backups = backups if show_all else backups[:limit]
    hidden = len(backups) - len(display_backups)

    table = Table(
        title=f"[bold]{paths.database.name}[/bold] ({len(backups)} backups)",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Date", style="green")
    table.add_column("Age", style="yellow", justify="right")
    table.add_column("Size", style="blue", justify="right")
    table.add_column("Filename", style="dim")

    for i, item in enumerate(display_backups):
        table.add_row(
            str(i),
            item.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            _format_age(item.age_days),
            item.size_human,
            item.path.name,
        )

    console.print(table)
    if hidden:
        console.print(f"[dim]... and {hidden} more (use --all to show)[/dim]")


@backup.command(name="rollback")
@click.option(
    "--index", "-i",
    type=int,
    default=0,
    help="Backup index to restore (0 = most recent, 1 = second most recent, etc.)",
)
@click.option("--dry-run", "-n", is_flag=True, help="Preview without making changes")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt")
@click.pass_obj
def rollback_cmd(ctx, index: int, dry_run: bool, force: bool):
    """Restore the site database from a backup.

    Creates a backup of the current state before restoring.

    Examples:
        cmsops backup rollback           # Restore most recent backup
        cmsops backup rollback -i 1      # Restore second most recent
        cmsops backup rollback -n        # Preview (dry run)
    """
    dry_run = dry_run or (ctx.dry_run if ctx else False)

    paths = get_paths()
    backups = list_backups(paths.backups, paths.database.stem)
    if not backups:
        console.print("[red]No backups found[/red]")
        return

    if index >= len(backups):
        console.print(f"[red]Backup index {index} out of range (only {len(backups)} backups)[/red]")
        return

    item = backups[index]

    console.print(Panel(
        f"[bold]Current:[/bold] {paths.database.name}\n"
        f"[bold]Restore from:[/bold] {item.path.name}\n"
        f"[bold]Backup date:[/bold] {item.timestamp.strftime('%Y-%m-%d %H:%M:%S')}\n"
        f"[bold]Backup age:[/bold] {_format_age(item.age_days)}\n"
        f"[bold]Backup size:[/bold] {item.size_human}",
        title="Rollback Preview",
    ))

    if dry_run:
        console.print("\n[yellow]DRY RUN - no changes made[/yellow]")
        return

    if not force:
        console.print("\n[yellow]Warning: This will create a backup of the current state, then restore.[/yellow]")
        if not click.confirm("Proceed with rollback?"):
            console.print("[yellow]Cancelled[/yellow]")
            return

    try:
        rollback_database(paths.database, paths.backups, index)
    except OSError as e:
        console.print(f"[red]Rollback failed: {e}[/red]")
        raise click.Abort() from e

    console.print(f"\n[green]Successfully restored {paths.database.name} from {item.path.name}[/green]")
    console.print("[dim]A backup of the previous state was created.[/dim]")
