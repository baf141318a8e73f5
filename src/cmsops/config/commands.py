"""
Configuration management CLI commands.

Settings live in .cmsops/config.yaml as nested mappings and are addressed
with dotted keys such as ``uploads.root``. JSON content is valid YAML, so
hand-written JSON files load as well.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cmsops.core.backup import DEFAULT_KEEP_COUNT, DEFAULT_KEEP_DAYS
from cmsops.core.config import get_paths

console = Console()

_MISSING = object()


def get_config_path() -> Path:
    return get_paths().config_file


def load_config() -> dict[str, Any]:
    """Read config.yaml; a missing, empty or non-mapping file yields ``{}``."""
    config_path = get_config_path()
    if not config_path.exists():
        return {}
    loaded = yaml.safe_load(config_path.read_text())
    return loaded if isinstance(loaded, dict) else {}


def save_config(config: dict[str, Any]) -> None:
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(yaml.safe_dump(config, default_flow_style=False, sort_keys=False))


def _lookup(config: dict[str, Any], key: str) -> Any:
    node: Any = config
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a configuration value by dotted key."""
    value = _lookup(load_config(), key)
    return default if value is _MISSING else value


def set_config_value(key: str, value: Any) -> None:
    """Set a configuration value by dotted key, replacing non-mapping parents."""
    config = load_config()
    *parents, leaf = key.split(".")
    node = config
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[leaf] = value
    save_config(config)


CONFIG_SCHEMA: dict[str, dict[str, Any]] = {
    "uploads.root": {
        "default": "uploads",
        "type": str,
        "description": "Managed upload directory, relative to the site root",
    },
    "uploads.exclude": {
        "default": [],
        "type": list,
        "description": "Path prefixes never reported as lost files",
    },
    "localization.label_template": {
        "default": "[Translate to {title}:]",
        "type": str,
        "description": "Prefix put in front of translatable fields",
    },
    "localization.prefix_on_copy": {
        "default": True,
        "type": bool,
        "description": "Also prefix translatable fields when copying",
    },
    "backup.keep_days": {
        "default": DEFAULT_KEEP_DAYS,
        "type": int,
        "description": "Maximum age of backups in days",
    },
    "backup.keep_count": {
        "default": DEFAULT_KEEP_COUNT,
        "type": int,
        "description": "Minimum number of backups to keep",
    },
}

# Schema of content tables: which fields are translated and which hold
# upload paths. Overridden per table under tables.<name> in config.yaml.
DEFAULT_TABLES: dict[str, dict[str, list[str]]] = {
    "content": {
        "translatable_fields": ["header", "bodytext"],
        "file_fields": ["media"],
    },
}


def get_setting(key: str) -> Any:
    """Get a setting from CONFIG_SCHEMA, falling back to its default."""
    return get_config_value(key, CONFIG_SCHEMA[key]["default"])


def get_tables_config() -> dict[str, dict[str, list[str]]]:
    """Merge configured table schemas over the built-in defaults."""
    tables = {name: dict(schema) for name, schema in DEFAULT_TABLES.items()}
    configured = get_config_value("tables", {}) or {}
    for name, schema in configured.items():
        if not isinstance(schema, dict):
            continue
        merged = tables.setdefault(name, {"translatable_fields": [], "file_fields": []})
        for key in ("translatable_fields", "file_fields"):
            if key in schema:
                merged[key] = list(schema[key] or [])
    return tables


def _convert_value(value: str, value_type: type) -> Any:
    if value_type is int:
        return int(value)
    if value_type is float:
        return float(value)
    if value_type is bool:
        return value.lower() in ("true", "1", "yes")
    if value_type is list:
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


@click.group()
def config():
    """Manage cmsops configuration.

    Settings are stored in .cmsops/config.yaml.
    """
    pass


@config.command(name="show")
@click.option("--all", "show_all", is_flag=True, help="Show all settings including defaults")
def show_cmd(show_all: bool):
    """Show settings that differ from their defaults, or all of them."""
    config_data = load_config()

    rows = []
    for key, schema in CONFIG_SCHEMA.items():
        current = _lookup(config_data, key)
        default = schema["default"]
        if current is _MISSING:
            if show_all:
                rows.append((key, f"[dim]{escape(str(default))}[/dim]", schema))
        elif show_all or current != default:
            rows.append((key, escape(str(current)), schema))

    if not rows and "tables" not in config_data:
        console.print("[dim]No custom configuration set. Using defaults.[/dim]")
        console.print("[dim]Use 'cmsops config show --all' to see all settings.[/dim]")
        return

    if rows:
        table = Table(title="Configuration", header_style="bold cyan")
        table.add_column("Setting")
        table.add_column("Value", style="green")
        table.add_column("Default", style="dim")
        table.add_column("Description", style="dim")
        for key, value, schema in rows:
            table.add_row(key, value, escape(str(schema["default"])), schema["description"])
        console.print(table)

    if show_all or "tables" in config_data:
        schema_table = Table(title="Tables", header_style="bold cyan")
        schema_table.add_column("Table")
        schema_table.add_column("Translatable fields", style="green")
        schema_table.add_column("File fields", style="green")
        for name, schema in sorted(get_tables_config().items()):
            schema_table.add_row(
                name,
                ", ".join(schema.get("translatable_fields", [])),
                ", ".join(schema.get("file_fields", [])),
            )
        console.print(schema_table)

    console.print(f"[dim]Config file: {escape(str(get_config_path()))}[/dim]")


def _check_key(key: str) -> None:
    if key in CONFIG_SCHEMA:
        return
    console.print(f"[red]Unknown setting: {escape(key)}[/red]")
    console.print(f"[dim]Known settings: {', '.join(CONFIG_SCHEMA)}[/dim]")
    raise SystemExit(1)


@config.command(name="get")
@click.argument("key")
def get_cmd(key: str):
    """Print one setting.

    Examples:
        cmsops config get uploads.root
        cmsops config get backup.keep_count
    """
    _check_key(key)
    value = get_config_value(key, _MISSING)
    if value is _MISSING:
        console.print(f"{key} = {escape(str(CONFIG_SCHEMA[key]['default']))} [dim](default)[/dim]")
    else:
        console.print(f"{key} = {escape(str(value))}")


@config.command(name="set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def set_cmd(ctx, key: str, value: str):
    """Change one setting. List settings take a comma-separated value.

    Examples:
        cmsops config set uploads.root fileadmin/uploads
        cmsops config set uploads.exclude uploads/pics,uploads/media
    """
    dry_run = ctx.dry_run if ctx else False

    _check_key(key)
    value_type = CONFIG_SCHEMA[key]["type"]
    try:
        typed_value = _convert_value(value, value_type)
    except ValueError:
        console.print(f"[red]Invalid value for {key}, expected {value_type.__name__}[/red]")
        raise SystemExit(1) from None

    if dry_run:
        console.print(f"[yellow]Would set {key} = {escape(str(typed_value))}[/yellow]")
        return
    set_config_value(key, typed_value)
    console.print(f"[green]Set {key} = {escape(str(typed_value))}[/green]")
