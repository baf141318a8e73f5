"""
Reference index maintenance.

The reference index records every structural reference from a record field
to a file (ref_table "_FILE") or another record. The lost files check trusts
it completely, so it should be rebuilt before scanning whenever records may
have changed outside cmsops.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cmsops.core.database import FILE_REFERENCE, ReferenceEntry, SiteDatabase

logger = logging.getLogger(__name__)


@dataclass
class RebuildStats:
    """Outcome of a reference index rebuild."""

    records: int = 0
    added: int = 0
    removed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"records": self.records, "added": self.added, "removed": self.removed}


def split_file_list(value: object) -> list[str]:
    """Split a file field value into paths.

    File fields hold either a list of paths or a comma-separated string.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        items = str(value).split(",")
    return [item.strip() for item in items if item.strip()]


class ReferenceIndex:
    """Reads and rebuilds the file part of the reference index."""

    def __init__(self, database: SiteDatabase, tables: dict[str, dict[str, list[str]]] | None = None):
        """Initialize index.

        Args:
            database: Site database holding records and the index
            tables: Table name -> schema with a "file_fields" list
        """
        self.database = database
        self.tables = tables or {}

    def file_references(self, path: str, hard_only: bool = True) -> list[ReferenceEntry]:
        """Index rows pointing at a file path relative to the site root."""
        return self.database.find_file_references(path, hard_only=hard_only)

    def is_referenced(self, path: str) -> bool:
        """Check if at least one hard reference points at the file."""
        return bool(self.file_references(path, hard_only=True))

    def update_index(self) -> RebuildStats:
        """Rebuild the hard file references of all configured file fields.

        Deleted records are indexed too, so files attached to them are not
        reported as lost.
        """
        stats = RebuildStats()

        for table, schema in sorted(self.tables.items()):
            file_fields = list(schema.get("file_fields", []))
            if not file_fields:
                continue

            stats.removed += self.database.delete_references(table, file_fields)

            entries: list[ReferenceEntry] = []
            for record in self.database.iter_records(table):
                stats.records += 1
                for field_name in file_fields:
                    for sorting, path in enumerate(split_file_list(record.data.get(field_name))):
                        entries.append(
                            ReferenceEntry(
                                table=table,
                                record_id=record.id,
                                field=field_name,
                                ref_table=FILE_REFERENCE,
                                ref_string=path,
                                sorting=sorting,
                            )
                        )
            stats.added += self.database.add_references(entries)
            logger.debug("Indexed %d file reference(s) for table %s", len(entries), table)

        logger.info(
            "Reference index rebuilt: %d record(s), %d added, %d removed",
            stats.records, stats.added, stats.removed,
        )
        return stats
