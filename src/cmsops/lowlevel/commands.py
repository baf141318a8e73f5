"""CLI commands for low-level site cleanup."""

from __future__ import annotations

import json as json_module
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cmsops.core.database import SiteDatabase
from cmsops.core.errors import CmsopsError

console = Console()

LOST_FILES_HELP = """Find and delete files in the upload folder that no record references.

\b
Assumptions:
- the reference index is complete (update it before running this!)
- everything in the upload folder is attached to records through
  configured file fields and nothing there is managed by hand
- index.html, .htaccess and RTEmagic* image files are always kept
- files attached to deleted records still count as referenced

Unless --dry-run is given, the files are deleted. This cannot be undone.
Make sure nothing outside cmsops uses these files.

\b
Examples:
    cmsops cleanup lost-files --dry-run
    cmsops cleanup lost-files --exclude uploads/pics,uploads/media -n
    cmsops cleanup lost-files --update-refindex
"""


def _open_database() -> SiteDatabase:
    from cmsops.core.database import open_site_database

    try:
        return open_site_database()
    except (FileNotFoundError, CmsopsError) as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1) from None


def _reference_index(database: SiteDatabase):
    from cmsops.config.commands import get_tables_config
    from cmsops.lowlevel.refindex import ReferenceIndex

    return ReferenceIndex(database, get_tables_config())


def _print_rebuild(stats) -> None:
    console.print(
        f"[green]Reference index updated:[/green] {stats.records} record(s) scanned, "
        f"{stats.added} reference(s) written, {stats.removed} removed."
    )


@click.group(name="cleanup")
def cleanup() -> None:
    """Low-level maintenance of the site database and uploads."""
    pass


@cleanup.command(name="refindex")
@click.pass_obj
def refindex_cmd(ctx) -> None:
    """Rebuild the file references of the reference index."""
    if ctx and ctx.dry_run:
        console.print("[yellow]DRY RUN - reference index not rebuilt[/yellow]")
        return

    database = _open_database()
    try:
        stats = _reference_index(database).update_index()
    except CmsopsError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(1) from None
    finally:
        database.close()
    _print_rebuild(stats)


@cleanup.command(name="lost-files", help=LOST_FILES_HELP)
@click.option("--exclude", help='Comma-separated path prefixes to skip, e.g. "uploads/pics,uploads/media"')
@click.option("--dry-run", is_flag=True, help="Only show which files would be deleted")
@click.option("--update-refindex", is_flag=True, help="Update the reference index first, without asking")
@click.option("-n", "--no-interaction", is_flag=True, help="Never ask; assume the reference index is current")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("-v", "--verbose", is_flag=True, help="List the lost files")
@click.pass_obj
def lost_files_cmd(
    ctx,
    exclude: str | None,
    dry_run: bool,
    update_refindex: bool,
    no_interaction: bool,
    as_json: bool,
    verbose: bool,
) -> None:
    from cmsops.config.commands import get_setting
    from cmsops.core.config import get_paths
    from cmsops.core.prompts import confirm, note_message
    from cmsops.lowlevel.lost_files import LostFilesDetector, parse_exclude_option

    global_dry_run = ctx.dry_run if ctx else False
    dry_run = dry_run or global_dry_run

    database = _open_database()
    try:
        paths = get_paths()
        index = _reference_index(database)

        if not as_json:
            note_message("Finding lost files requires a clean reference index")
        if global_dry_run:
            if update_refindex and not as_json:
                console.print("[yellow]DRY RUN - reference index not rebuilt[/yellow]")
            update_refindex = False
        elif not update_refindex and not no_interaction and not as_json:
            update_refindex = confirm("Should the reference index be updated right now?", default=False)

        if update_refindex:
            stats = index.update_index()
            if not as_json:
                _print_rebuild(stats)
        elif not as_json:
            console.print("Reference index is assumed to be up to date, continuing.")

        excluded = parse_exclude_option(exclude) + list(get_setting("uploads.exclude") or [])
        upload_root = Path(str(get_setting("uploads.root")))

        detector = LostFilesDetector(paths.root, index)
        lost = detector.find_orphans(upload_root, excluded)
        report = detector.delete_orphans(lost, dry_run=dry_run)
    except CmsopsError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(1) from None
    finally:
        database.close()

    if as_json:
        output = report.to_dict()
        output["lost"] = lost
        click.echo(json_module.dumps(output, indent=2))
        return

    if not lost:
        console.print("[green]Nothing to do, no lost files found.[/green]")
        return

    console.print(f"Found {len(lost)} lost file(s).")
    if verbose or dry_run:
        for path in lost:
            console.print(f"  • {escape(path)}")

    if dry_run:
        console.print()
        console.print(f"[yellow]DRY RUN - would delete {len(report.would_delete)} file(s)[/yellow]")
        return

    table = Table(title="Lost Files", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Deleted:", f"[green]{report.deleted_count}[/green]")
    if report.not_found:
        table.add_row("Not found:", f"[yellow]{len(report.not_found)}[/yellow]")
    if report.failed:
        table.add_row("Failed:", f"[red]{len(report.failed)}[/red]")
    console.print(table)

    for path in report.not_found:
        console.print(f"[yellow]File {escape(path)} was not found![/yellow]")
    for path, reason in report.failed.items():
        console.print(f"[red]Could not delete {escape(path)}: {escape(reason)}[/red]")

    console.print(f"[green]Deleted {report.deleted_count} lost file(s).[/green]")
