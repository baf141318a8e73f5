"""
Lost file detection.

Finds files in the managed upload tree that no record references any more,
according to the reference index, and deletes them.

Assumptions:
  - the reference index is complete and up to date (rebuild it first),
  - everything under the upload root is attached to records through
    configured file fields, nothing is managed by hand,
  - index.html, .htaccess and RTEmagic* image files are kept regardless.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cmsops.core.errors import InvalidArgument
from cmsops.lowlevel.refindex import ReferenceIndex

logger = logging.getLogger(__name__)

# Files that are often placed in upload folders on purpose
EXEMPT_NAMES = frozenset({"index.html", ".htaccess"})

# Images generated by the legacy rich text editor
RTE_MAGIC_PATTERN = re.compile(r"^RTEmagic[P|C]_")


@dataclass
class DeletionReport:
    """Result of deleting lost files."""

    dry_run: bool = False
    deleted: list[str] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    would_delete: list[str] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)

    @property
    def has_problems(self) -> bool:
        return bool(self.not_found or self.failed)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "dry_run": self.dry_run,
            "deleted": self.deleted_count,
            "deleted_files": self.deleted,
            "would_delete": self.would_delete,
            "not_found": self.not_found,
            "failed": self.failed,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def is_exempt(path: str) -> bool:
    """Check if a file is kept no matter what the index says."""
    name = path.rsplit("/", 1)[-1]
    return name in EXEMPT_NAMES or bool(RTE_MAGIC_PATTERN.match(name))


def is_excluded(path: str, excluded_path_prefixes: Iterable[str]) -> bool:
    """Check if a path starts with one of the excluded prefixes."""
    return any(path.startswith(prefix) for prefix in excluded_path_prefixes if prefix)


def parse_exclude_option(value: str | None) -> list[str]:
    """Split a comma-separated exclude list, dropping empty items."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class LostFilesDetector:
    """Finds and deletes files below the upload root with no hard reference."""

    def __init__(self, site_root: Path, reference_index: ReferenceIndex):
        """Initialize detector.

        Args:
            site_root: Site root; reported paths are relative to it
            reference_index: Index consulted for every candidate file
        """
        self.site_root = Path(site_root)
        self.reference_index = reference_index

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.site_root).as_posix()

    def _resolve_upload_root(self, upload_root: Path | str) -> Path:
        upload_root = Path(upload_root)
        if not upload_root.is_absolute():
            upload_root = self.site_root / upload_root
        try:
            upload_root.resolve().relative_to(self.site_root.resolve())
        except ValueError:
            raise InvalidArgument(
                f"Upload root {upload_root} is not inside the site root {self.site_root}"
            ) from None
        return upload_root

    def iter_files(self, upload_root: Path | str) -> Iterator[str]:
        """Yield every file below the upload root, relative to the site root.

        Directories are walked in sorted order. Symlinks are skipped.
        """
        root = self._resolve_upload_root(upload_root)
        if not root.is_dir():
            logger.warning("Upload root %s does not exist", root)
            return

        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                if path.is_symlink():
                    continue
                yield self._relative(path)

    def find_orphans(
        self,
        upload_root: Path | str,
        excluded_path_prefixes: Iterable[str] = (),
    ) -> list[str]:
        """Find files with no hard reference in the reference index.

        Args:
            upload_root: Directory to scan (absolute or relative to the site root)
            excluded_path_prefixes: Site-root-relative prefixes to skip,
                e.g. "uploads/pics"

        Returns:
            Paths relative to the site root, in scan order
        """
        excluded = list(excluded_path_prefixes)
        lost: list[str] = []
        checked = 0

        for path in self.iter_files(upload_root):
            if is_exempt(path):
                logger.debug("Exempt: %s", path)
                continue
            if is_excluded(path, excluded):
                logger.debug("Excluded: %s", path)
                continue

            checked += 1
            if not self.reference_index.is_referenced(path):
                lost.append(path)

        logger.info("Checked %d file(s), %d lost", checked, len(lost))
        return lost

    def delete_orphans(self, paths: Iterable[str], dry_run: bool = False) -> DeletionReport:
        """Delete lost files. Irreversible unless ``dry_run`` is set.

        Missing files and failed deletions are recorded in the report and
        the remaining files are still processed.
        """
        report = DeletionReport(dry_run=dry_run)

        for path in paths:
            absolute = self.site_root / path
            try:
                absolute.resolve().relative_to(self.site_root.resolve())
            except ValueError:
                report.failed[path] = "outside the site root"
                logger.warning("Refusing to delete %s: outside the site root", path)
                continue

            if dry_run:
                report.would_delete.append(path)
                logger.debug("Would delete %s", absolute)
                continue

            if not absolute.is_file():
                report.not_found.append(path)
                logger.warning("File %s was not found", absolute)
                continue

            try:
                absolute.unlink()
            except FileNotFoundError:
                report.not_found.append(path)
                logger.warning("File %s was not found", absolute)
            except OSError as e:
                report.failed[path] = str(e)
                logger.warning("Could not delete %s: %s", absolute, e)
            else:
                report.deleted.append(path)
                logger.debug("Permanently deleted %s", absolute)

        return report
