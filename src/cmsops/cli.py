"""
Main CLI dispatcher for cmsops.

Usage:
    cmsops init                          # Initialize .cmsops/ directory
    cmsops localize [run|languages|summary]
    cmsops cleanup [lost-files|refindex]
    cmsops records [add|list|delete|language|languages]
    cmsops backup [list|rollback]
    cmsops config [show|get|set]
"""

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from cmsops import __version__

console = Console()


class Context:
    """Shared context for all commands."""

    def __init__(self, verbose: bool = False, dry_run: bool = False):
        self.verbose = verbose
        self.dry_run = dry_run
        self.console = console


pass_context = click.make_pass_decorator(Context, ensure=True)


def setup_logging(verbose: bool) -> None:
    """Route library log records through rich on stderr."""
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[handler],
        force=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="cmsops")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("-n", "--dry-run", is_flag=True, help="Preview without making changes")
@click.pass_context
def main(ctx: click.Context, verbose: bool, dry_run: bool) -> None:
    """Content site operations.

    Localize page content into other languages and clean up files
    that no record references any more.
    """
    ctx.ensure_object(dict)
    ctx.obj = Context(verbose=verbose, dry_run=dry_run)
    setup_logging(verbose)

    if dry_run:
        console.print("[yellow]DRY RUN MODE - No changes will be made[/yellow]")


@main.command()
@click.option("--force", "-f", is_flag=True, help="Reinitialize an existing .cmsops/ directory")
@click.pass_obj
def init(ctx, force: bool) -> None:
    """Initialize .cmsops/ directory structure.

    Creates the data directory, the backup folder, the upload folder and
    an empty site database. Existing data is kept on --force; only the
    missing pieces are created.
    """
    from pathlib import Path

    from cmsops.core.config import DATA_DIR_NAME, get_paths, get_site_root
    from cmsops.core.database import SiteDatabase

    dry_run = ctx.dry_run if ctx else False

    try:
        site_root = get_site_root()
    except FileNotFoundError:
        # .cmsops/ does not exist yet, so the cwd becomes the site root
        site_root = Path.cwd()

    paths = get_paths(site_root)

    if paths.data_dir.exists() and not force:
        console.print(f"[yellow]{DATA_DIR_NAME}/ directory already exists at {paths.data_dir}[/yellow]")
        console.print("[dim]Use --force to reinitialize.[/dim]")
        return

    console.print(f"[cyan]Initializing {DATA_DIR_NAME}/ directory at {site_root}[/cyan]")

    for dir_path in (paths.data_dir, paths.backups, paths.uploads):
        if not dry_run:
            dir_path.mkdir(parents=True, exist_ok=True)
        console.print(f"  [green]Created[/green] {dir_path.relative_to(site_root)}")

    if not dry_run:
        with SiteDatabase(paths.database) as database:
            database.initialize()
    console.print(f"  [green]Created[/green] {paths.database.relative_to(site_root)}")

    gitignore_path = site_root / ".gitignore"
    gitignore_entry = f"{DATA_DIR_NAME}/backups/"

    if gitignore_path.exists():
        content = gitignore_path.read_text()
        if gitignore_entry not in content:
            if not dry_run:
                with open(gitignore_path, "a") as f:
                    f.write(f"\n# cmsops backups\n{gitignore_entry}\n")
            console.print(f"  [green]Updated[/green] .gitignore with {gitignore_entry}")

    console.print()
    if dry_run:
        console.print("[yellow]DRY RUN - no changes made[/yellow]")
    else:
        console.print(f"[green]Done![/green] {DATA_DIR_NAME}/ directory initialized.")


# Command groups are registered after main is defined
from cmsops.backup.commands import backup  # noqa: E402
from cmsops.config.commands import config  # noqa: E402
from cmsops.localization.commands import localize  # noqa: E402
from cmsops.lowlevel.commands import cleanup  # noqa: E402
from cmsops.records.commands import records  # noqa: E402

main.add_command(localize)
main.add_command(cleanup)
main.add_command(records)
main.add_command(backup)
main.add_command(config)


if __name__ == "__main__":
    main()
