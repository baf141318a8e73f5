"""
Configuration and path management.

Provides site root detection and standard paths for a cmsops site.
Uses the .cmsops/ directory for tool data (site database, config, backups).

Resolution order for site root:
  1. CMSOPS_SITE_ROOT environment variable (highest priority)
  2. Walk up from cwd looking for .cmsops/ directory
  3. Global config file (~/.config/cmsops/config.yaml) site_root key
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml

DATA_DIR_NAME = ".cmsops"


@dataclass(frozen=True)
class SitePaths:
    """Standard paths for the site and cmsops data."""

    root: Path
    data_dir: Path

    # Data files (in .cmsops/)
    database: Path
    config_file: Path
    backups: Path

    # Managed upload tree (default location, see uploads.root setting)
    uploads: Path


def get_global_config_path() -> Path:
    """Return the path to the global cmsops config file.

    Respects XDG_CONFIG_HOME if set, otherwise defaults to
    ~/.config/cmsops/config.yaml.
    """
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        base = Path(xdg_config_home)
    else:
        base = Path.home() / ".config"
    return base / "cmsops" / "config.yaml"


def load_global_config() -> dict:
    """Load the global cmsops configuration.

    Returns:
        Configuration dict, or empty dict if file is missing or invalid.
    """
    config_path = get_global_config_path()
    if not config_path.is_file():
        return {}
    try:
        text = config_path.read_text(encoding="utf-8")
        data = yaml.safe_load(text)
        if isinstance(data, dict):
            return data
        return {}
    except (OSError, yaml.YAMLError):
        return {}


def _walk_up_for_data_dir(start_path: Path) -> Path | None:
    """Walk up directory tree looking for a .cmsops/ directory."""
    current = start_path.resolve()
    while current != current.parent:
        if (current / DATA_DIR_NAME).is_dir():
            return current
        current = current.parent
    return None


def find_site_root(start_path: Path | None = None) -> Path:
    """Find the site root using 3-tier resolution.

    Args:
        start_path: Starting path for .cmsops/ directory walk (defaults to cwd)

    Returns:
        Path to site root

    Raises:
        FileNotFoundError: If .cmsops/ directory not found by any method
    """
    env_root = os.environ.get("CMSOPS_SITE_ROOT")
    if env_root:
        env_path = Path(env_root).resolve()
        if (env_path / DATA_DIR_NAME).is_dir():
            return env_path
        raise FileNotFoundError(
            f"CMSOPS_SITE_ROOT={env_root} does not contain a {DATA_DIR_NAME}/ directory."
        )

    if start_path is None:
        start_path = Path.cwd()
    result = _walk_up_for_data_dir(Path(start_path))
    if result is not None:
        return result

    global_config = load_global_config()
    site_root_str = global_config.get("site_root")
    if site_root_str:
        global_path = Path(site_root_str).expanduser().resolve()
        if (global_path / DATA_DIR_NAME).is_dir():
            return global_path
        raise FileNotFoundError(
            f"Global config site_root={site_root_str} does not contain a "
            f"{DATA_DIR_NAME}/ directory."
        )

    raise FileNotFoundError(
        f"Could not find {DATA_DIR_NAME}/ directory starting from {start_path}. "
        f"Run 'cmsops init' to initialize, set CMSOPS_SITE_ROOT, or configure "
        f"site_root in {get_global_config_path()}."
    )


@lru_cache(maxsize=1)
def get_site_root() -> Path:
    """Get the cached site root path."""
    return find_site_root()


def get_paths(site_root: Path | None = None) -> SitePaths:
    """Get all standard paths for the site.

    Args:
        site_root: Site root path (uses cached default if not provided)

    Returns:
        SitePaths dataclass with all paths
    """
    if site_root is None:
        site_root = get_site_root()

    site_root = Path(site_root)
    data_dir = site_root / DATA_DIR_NAME

    return SitePaths(
        root=site_root,
        data_dir=data_dir,
        database=data_dir / "site.db",
        config_file=data_dir / "config.yaml",
        backups=data_dir / "backups",
        uploads=site_root / "uploads",
    )
