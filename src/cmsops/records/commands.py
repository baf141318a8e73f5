"""
Record management CLI commands.

Low-level access to content records and site languages, mostly for
seeding a site and inspecting the result of localization runs.
"""

from __future__ import annotations

import json as json_module

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cmsops.core.database import SiteDatabase
from cmsops.core.errors import CmsopsError
from cmsops.localization.engine import DEFAULT_TABLE

console = Console()


def _open_database() -> SiteDatabase:
    from cmsops.core.database import open_site_database

    try:
        return open_site_database()
    except (FileNotFoundError, CmsopsError) as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1) from None


def parse_fields(values: tuple[str, ...]) -> dict[str, str]:
    """Parse repeated ``key=value`` options into a payload dict."""
    data: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected key=value, got {item!r}", param_hint="--field")
        data[key.strip()] = value
    return data


@click.group()
def records() -> None:
    """Inspect and seed content records and languages."""
    pass


@records.command(name="add")
@click.argument("page_id", type=int)
@click.option("--lang", "language_id", type=int, default=0, show_default=True, help="Language id")
@click.option("--field", "fields", multiple=True, help="Payload field as key=value (repeatable)")
@click.option("--after", type=int, default=None, help="Place after this record id (default: top)")
@click.option("--table", default=DEFAULT_TABLE, show_default=True, help="Content table")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def add_cmd(
    ctx,
    page_id: int,
    language_id: int,
    fields: tuple[str, ...],
    after: int | None,
    table: str,
    as_json: bool,
) -> None:
    """Add a record to a page.

    \b
    Examples:
        cmsops records add 1 --field header="Test content 1"
        cmsops records add 1 --field header=Intro --after 3
    """
    data = parse_fields(fields)

    if ctx and ctx.dry_run:
        position = f"after {table}:{after}" if after is not None else "at the top"
        console.print(f"[yellow]Would add a record to page {page_id} {position}: {escape(str(data))}[/yellow]")
        return

    database = _open_database()
    try:
        record = database.insert_record(table, page_id, language_id, data, after=after)
    except CmsopsError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(1) from None
    finally:
        database.close()

    if as_json:
        click.echo(json_module.dumps(record.to_dict(), indent=2, ensure_ascii=False))
        return
    console.print(f"[green]Added[/green] {table}:{record.id} (sort_order {record.sort_order})")


@records.command(name="list")
@click.argument("page_id", type=int)
@click.option("--lang", "language_id", type=int, default=0, show_default=True, help="Language id")
@click.option("--table", default=DEFAULT_TABLE, show_default=True, help="Content table")
@click.option("--deleted", "include_deleted", is_flag=True, help="Include deleted records")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_cmd(page_id: int, language_id: int, table: str, include_deleted: bool, as_json: bool) -> None:
    """List records of a page in display order."""
    database = _open_database()
    try:
        items = database.siblings(table, page_id, language_id, include_deleted=include_deleted)
    finally:
        database.close()

    if as_json:
        click.echo(json_module.dumps([r.to_dict() for r in items], indent=2, ensure_ascii=False))
        return

    if not items:
        console.print(f"[dim]No records on page {page_id} in language {language_id}[/dim]")
        return

    out = Table(title=f"{table}: page {page_id}, language {language_id}")
    out.add_column("Id", style="cyan", justify="right")
    out.add_column("Sort", style="dim", justify="right")
    out.add_column("Parent", justify="right")
    out.add_column("Source", justify="right")
    out.add_column("Data")
    for record in items:
        summary = ", ".join(f"{k}={v}" for k, v in record.data.items())
        if record.deleted:
            summary = f"[red](deleted)[/red] {escape(summary)}"
        else:
            summary = escape(summary)
        out.add_row(
            str(record.id),
            str(record.sort_order),
            str(record.parent_record_id),
            str(record.source_record_id),
            summary,
        )
    console.print(out)


@records.command(name="delete")
@click.argument("record_id", type=int)
@click.option("--table", default=DEFAULT_TABLE, show_default=True, help="Content table")
@click.pass_obj
def delete_cmd(ctx, record_id: int, table: str) -> None:
    """Mark a record as deleted. Its references stay in the index."""
    database = _open_database()
    if ctx and ctx.dry_run:
        try:
            record = database.get_record(table, record_id)
        finally:
            database.close()
        if record is None:
            console.print(f"[red]Record {table}:{record_id} does not exist[/red]")
            raise SystemExit(1)
        console.print(f"[yellow]Would delete {table}:{record_id}[/yellow]")
        return

    try:
        database.delete_record(table, record_id)
    except CmsopsError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(1) from None
    finally:
        database.close()
    console.print(f"[green]Deleted[/green] {table}:{record_id}")


@records.command(name="language")
@click.argument("language_id", type=int)
@click.argument("title")
@click.option("--iso", "iso_code", default="", help="ISO 639-1 code, e.g. da")
@click.pass_obj
def language_cmd(ctx, language_id: int, title: str, iso_code: str) -> None:
    """Add or rename a site language."""
    if ctx and ctx.dry_run:
        console.print(f"[yellow]Would save language {language_id}: {escape(title)}[/yellow]")
        return

    database = _open_database()
    try:
        language = database.add_language(language_id, title, iso_code)
    except CmsopsError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(1) from None
    finally:
        database.close()
    console.print(f"[green]Saved language[/green] {language.id}: {escape(language.title)}")


@records.command(name="languages")
def languages_cmd() -> None:
    """List site languages."""
    database = _open_database()
    try:
        langs = database.languages()
    finally:
        database.close()

    out = Table(title="Languages")
    out.add_column("Id", style="cyan", justify="right")
    out.add_column("Title")
    out.add_column("ISO", style="dim")
    for lang in langs:
        out.add_row(str(lang.id), escape(lang.title), lang.iso_code)
    console.print(out)
