"""Core utilities for cmsops."""

from cmsops.core.backup import (
    DEFAULT_KEEP_COUNT,
    DEFAULT_KEEP_DAYS,
    BackupInfo,
    backup_database,
    cleanup_old_backups,
    create_backup,
    list_backups,
    rollback_database,
)
from cmsops.core.config import get_paths, get_site_root
from cmsops.core.database import Language, Record, ReferenceEntry, SiteDatabase, open_site_database
from cmsops.core.errors import (
    CmsopsError,
    InvalidArgument,
    LocalizationError,
    RecordNotFound,
    StorageError,
)

__all__ = [
    # Backup
    "create_backup",
    "backup_database",
    "cleanup_old_backups",
    "list_backups",
    "rollback_database",
    "BackupInfo",
    "DEFAULT_KEEP_COUNT",
    "DEFAULT_KEEP_DAYS",
    # Config
    "get_site_root",
    "get_paths",
    # Database
    "SiteDatabase",
    "open_site_database",
    "Language",
    "Record",
    "ReferenceEntry",
    # Errors
    "CmsopsError",
    "InvalidArgument",
    "RecordNotFound",
    "StorageError",
    "LocalizationError",
]
