"""
Database backup utilities.

Provides timestamped copies of the site database with rotation.
Supports both count-based and time-based (age) retention policies.
"""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

# Default retention settings
DEFAULT_KEEP_COUNT = 10
DEFAULT_KEEP_DAYS = 30
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
TIMESTAMP_PATTERN = re.compile(r"_(\d{8}_\d{6})(?:_\d+)?\.")
BACKUP_NAME_PATTERN = re.compile(r"(.+)_\d{8}_\d{6}(?:_\d+)?\.\w+$")


@dataclass
class BackupInfo:
    """Information about a backup file."""

    path: Path
    timestamp: datetime
    size_bytes: int
    db_name: str

    @property
    def age_days(self) -> float:
        """Age of backup in days."""
        return (datetime.now() - self.timestamp).total_seconds() / 86400

    @property
    def size_human(self) -> str:
        """Human-readable size."""
        if self.size_bytes < 1024:
            return f"{self.size_bytes} B"
        elif self.size_bytes < 1024 * 1024:
            return f"{self.size_bytes / 1024:.1f} KB"
        else:
            return f"{self.size_bytes / (1024 * 1024):.1f} MB"


def parse_backup_timestamp(filename: str) -> datetime | None:
    """Extract timestamp from backup filename.

    Args:
        filename: Backup filename like 'site_20251212_144234.db'

    Returns:
        datetime if parseable, None otherwise
    """
    match = TIMESTAMP_PATTERN.search(filename)
    if match:
        try:
            return datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
        except ValueError:
            return None
    return None


def list_backups(backup_dir: Path, db_name: str | None = None) -> list[BackupInfo]:
    """List all backups in a directory with metadata.

    Args:
        backup_dir: Directory containing backups
        db_name: Optional filter by database name (e.g., 'site')

    Returns:
        List of BackupInfo sorted by timestamp (newest first)
    """
    backup_dir = Path(backup_dir)
    if not backup_dir.exists():
        return []

    pattern = f"{db_name}_*" if db_name else "*_[0-9]*_[0-9]*.*"
    backups = []

    for path in backup_dir.glob(pattern):
        timestamp = parse_backup_timestamp(path.name)
        if not timestamp:
            continue
        name_match = BACKUP_NAME_PATTERN.match(path.name)
        extracted_name = name_match.group(1) if name_match else "unknown"
        if db_name and extracted_name != db_name:
            continue

        backups.append(
            BackupInfo(
                path=path,
                timestamp=timestamp,
                size_bytes=path.stat().st_size,
                db_name=extracted_name,
            )
        )

    return sorted(backups, key=lambda b: (b.timestamp, b.path.name), reverse=True)


def create_backup(
    file_path: Path,
    backup_dir: Path | None = None,
    timestamp_format: str = TIMESTAMP_FORMAT,
) -> Path:
    """Create a timestamped backup of a file.

    Args:
        file_path: Path to file to backup
        backup_dir: Directory to store backups (defaults to file_path.parent / 'backups')
        timestamp_format: strftime format for timestamp in filename

    Returns:
        Path to created backup file

    Raises:
        FileNotFoundError: If file_path doesn't exist
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Cannot backup non-existent file: {file_path}")

    if backup_dir is None:
        backup_dir = file_path.parent / "backups"

    backup_dir = Path(backup_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime(timestamp_format)
    backup_path = backup_dir / f"{file_path.stem}_{timestamp}{file_path.suffix}"
    # Two backups within the same second get a counter suffix
    counter = 1
    while backup_path.exists():
        backup_path = backup_dir / f"{file_path.stem}_{timestamp}_{counter}{file_path.suffix}"
        counter += 1

    shutil.copy2(file_path, backup_path)

    return backup_path


def cleanup_old_backups(
    backup_dir: Path,
    pattern: str = "*_[0-9]*_[0-9]*.*",
    keep_last: int = DEFAULT_KEEP_COUNT,
    keep_days: int | None = None,
) -> list[Path]:
    """Remove old backup files based on count and/or age.

    A backup is kept if it is within the newest ``keep_last`` OR younger
    than ``keep_days``.

    Returns:
        List of removed backup file paths
    """
    backup_dir = Path(backup_dir)
    if not backup_dir.exists():
        return []

    backups = sorted(
        backup_dir.glob(pattern),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )

    removed = []
    cutoff_time = None
    if keep_days is not None:
        cutoff_time = datetime.now() - timedelta(days=keep_days)

    for i, backup in enumerate(backups):
        if i < keep_last:
            continue

        if cutoff_time is None:
            backup.unlink()
            removed.append(backup)
            continue

        timestamp = parse_backup_timestamp(backup.name)
        if timestamp and timestamp < cutoff_time:
            backup.unlink()
            removed.append(backup)

    return removed


def backup_database(
    db_path: Path,
    backup_dir: Path,
    keep_backups: int = DEFAULT_KEEP_COUNT,
    keep_days: int | None = DEFAULT_KEEP_DAYS,
) -> Path | None:
    """Back up a database file before a write batch and rotate old backups.

    Returns:
        Path to backup file, or None if the database does not exist yet
    """
    db_path = Path(db_path)
    if not db_path.exists():
        return None

    backup_path = create_backup(db_path, backup_dir)
    cleanup_old_backups(backup_dir, f"{db_path.stem}_*{db_path.suffix}", keep_backups, keep_days)
    return backup_path


def rollback_database(db_path: Path, backup_dir: Path, backup_index: int = 0) -> Path:
    """Restore a database from a backup.

    Args:
        db_path: Path to current database file
        backup_dir: Directory containing backups
        backup_index: Which backup to restore (0 = most recent)

    Returns:
        Path to the backup that was restored

    Raises:
        FileNotFoundError: If no suitable backup exists
    """
    db_name = db_path.stem
    backups = list_backups(backup_dir, db_name)

    if not backups:
        raise FileNotFoundError(f"No backups found for {db_name}")

    if backup_index >= len(backups):
        raise FileNotFoundError(
            f"Backup index {backup_index} out of range (only {len(backups)} backups)"
        )

    backup = backups[backup_index]

    # Keep the current state recoverable
    if db_path.exists():
        create_backup(db_path, backup_dir)

    shutil.copy2(backup.path, db_path)

    return backup.path
