"""CLI commands for localizing and copying page content."""

from __future__ import annotations

import json as json_module

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cmsops.core.database import Record, SiteDatabase
from cmsops.core.errors import CmsopsError, LocalizationError
from cmsops.localization.engine import DEFAULT_TABLE, Action, LocalizationEngine

console = Console()


def build_engine(database: SiteDatabase) -> LocalizationEngine:
    """Create an engine configured from .cmsops/config.yaml."""
    from cmsops.config.commands import get_setting, get_tables_config

    tables = get_tables_config()
    return LocalizationEngine(
        database,
        translatable_fields={name: schema.get("translatable_fields", []) for name, schema in tables.items()},
        prefix_on_copy=bool(get_setting("localization.prefix_on_copy")),
        label_template=str(get_setting("localization.label_template")),
    )


def _open_database() -> SiteDatabase:
    from cmsops.core.database import open_site_database

    try:
        return open_site_database()
    except (FileNotFoundError, CmsopsError) as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1) from None


def _parse_ids(value: str) -> list[int]:
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise click.BadParameter(f"Expected comma-separated record ids, got {value!r}") from None


def _records_table(title: str, records: list[Record]) -> Table:
    table = Table(title=title)
    table.add_column("Id", style="cyan", justify="right")
    table.add_column("Lang", justify="right")
    table.add_column("Parent", justify="right")
    table.add_column("Source", justify="right")
    table.add_column("Sort", style="dim", justify="right")
    table.add_column("Header", style="white")
    for record in records:
        table.add_row(
            str(record.id),
            str(record.language_id),
            str(record.parent_record_id),
            str(record.source_record_id),
            str(record.sort_order),
            escape(str(record.get("header", ""))),
        )
    return table


@click.group(name="localize")
def localize() -> None:
    """Translate or copy page content into other languages."""
    pass


@localize.command(name="run")
@click.argument("page_id", type=int)
@click.option("--from", "source_language", type=int, default=0, show_default=True, help="Source language id")
@click.option("--to", "dest_language", type=int, required=True, help="Destination language id")
@click.option("--records", "record_ids", required=True, help="Comma-separated source record ids, in order")
@click.option(
    "--action",
    type=click.Choice([a.value for a in Action]),
    default=Action.LOCALIZE.value,
    show_default=True,
    help="localize = linked translation, copy = independent record",
)
@click.option("--table", default=DEFAULT_TABLE, show_default=True, help="Content table")
@click.option("--no-backup", is_flag=True, help="Do not back up the database first")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def run_cmd(
    ctx,
    page_id: int,
    source_language: int,
    dest_language: int,
    record_ids: str,
    action: str,
    table: str,
    no_backup: bool,
    as_json: bool,
) -> None:
    """Localize or copy records of a page into another language.

    Records keep their relative order in the destination language.

    \b
    Examples:
        cmsops localize run 1 --to 1 --records 1,2,3
        cmsops localize run 1 --from 1 --to 2 --records 4,5 --action copy
    """
    dry_run = ctx.dry_run if ctx else False

    ids = _parse_ids(record_ids)
    if not ids:
        console.print("[yellow]No records given, nothing to do.[/yellow]")
        return

    database = _open_database()
    try:
        if dry_run:
            sources = [r for r in (database.get_record(table, i) for i in ids) if r is not None]
            if as_json:
                click.echo(json_module.dumps([r.to_dict() for r in sources], indent=2, ensure_ascii=False))
                return
            console.print(_records_table(f"Would {action} into language {dest_language}", sources))
            console.print(f"[yellow]DRY RUN - {len(ids)} record(s) not processed, no backup taken[/yellow]")
            return

        if not no_backup:
            from cmsops.backup.commands import backup_site_database

            backup_site_database()

        engine = build_engine(database)
        try:
            results = engine.process(page_id, source_language, dest_language, ids, action, table=table)
        except LocalizationError as e:
            if as_json:
                click.echo(json_module.dumps(
                    {"error": e.message, "failed_record_id": e.failed_record_id, "created": e.created},
                    indent=2,
                ))
            else:
                console.print(f"[red]{e.message}[/red]")
                if e.created:
                    console.print(
                        f"[yellow]Records created before the failure were kept: "
                        f"{', '.join(str(i) for i in e.created)}[/yellow]"
                    )
            raise SystemExit(1) from None
        except CmsopsError as e:
            console.print(f"[red]{e.message}[/red]")
            raise SystemExit(1) from None

        if as_json:
            click.echo(json_module.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False))
            return

        destination = database.siblings(table, page_id, dest_language)
        console.print(_records_table(f"Page {page_id}, language {dest_language}", destination))
        console.print(f"[green]Done![/green] {len(results)} record(s) processed ({action}).")
    finally:
        database.close()


@localize.command(name="languages")
@click.argument("page_id", type=int)
@click.option("--exclude", "exclude_language", type=int, default=None, help="Language id to leave out")
@click.option("--table", default=DEFAULT_TABLE, show_default=True, help="Content table")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def languages_cmd(page_id: int, exclude_language: int | None, table: str, as_json: bool) -> None:
    """List languages that have content on a page."""
    database = _open_database()
    try:
        used = build_engine(database).used_languages(page_id, exclude_language, table=table)
    finally:
        database.close()

    if as_json:
        click.echo(json_module.dumps(
            [{"id": lang.id, "title": lang.title, "iso_code": lang.iso_code} for lang in used],
            indent=2,
        ))
        return

    if not used:
        console.print(f"[dim]No content on page {page_id}[/dim]")
        return

    out = Table(title=f"Languages used on page {page_id}")
    out.add_column("Id", style="cyan", justify="right")
    out.add_column("Title")
    out.add_column("ISO", style="dim")
    for lang in used:
        out.add_row(str(lang.id), lang.title, lang.iso_code)
    console.print(out)


@localize.command(name="summary")
@click.argument("page_id", type=int)
@click.option("--to", "dest_language", type=int, required=True, help="Destination language id")
@click.option("--from", "source_language", type=int, default=0, show_default=True, help="Source language id")
@click.option("--table", default=DEFAULT_TABLE, show_default=True, help="Content table")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def summary_cmd(page_id: int, dest_language: int, source_language: int, table: str, as_json: bool) -> None:
    """Show records that still need a translation."""
    database = _open_database()
    try:
        pending = build_engine(database).localize_summary(
            page_id, dest_language, source_language_id=source_language, table=table
        )
    finally:
        database.close()

    if as_json:
        click.echo(json_module.dumps([r.to_dict() for r in pending], indent=2, ensure_ascii=False))
        return

    if not pending:
        console.print(f"[green]Everything on page {page_id} is translated into language {dest_language}.[/green]")
        return

    console.print(_records_table(f"Untranslated records on page {page_id}", pending))
    ids = ",".join(str(r.id) for r in pending)
    console.print(
        f"[dim]Run 'cmsops localize run {page_id} --from {source_language} --to {dest_language} "
        f"--records {ids}' to translate them.[/dim]"
    )
