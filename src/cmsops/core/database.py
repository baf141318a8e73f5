"""
Site database access.

Provides the relational store behind cmsops: content records with their
language and ordering columns, the configured site languages, and the
reference index. Backed by SQLite; every driver error surfaces as
StorageError.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cmsops.core.config import get_paths
from cmsops.core.errors import InvalidArgument, RecordNotFound, StorageError

logger = logging.getLogger(__name__)

# Gap between sort values of neighbouring records after renumbering
SORT_INTERVAL = 256

DEFAULT_LANGUAGE_ID = 0
DEFAULT_LANGUAGE_TITLE = "Default"

# ref_table value marking a reference to a file path instead of a record
FILE_REFERENCE = "_FILE"

SCHEMA = """
CREATE TABLE IF NOT EXISTS languages (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    iso_code TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tablename TEXT NOT NULL,
    page_id INTEGER NOT NULL,
    language_id INTEGER NOT NULL DEFAULT 0,
    parent_record_id INTEGER NOT NULL DEFAULT 0,
    source_record_id INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0,
    deleted INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS records_siblings
    ON records (tablename, page_id, language_id, sort_order);
CREATE INDEX IF NOT EXISTS records_parent
    ON records (tablename, page_id, language_id, parent_record_id);

CREATE TABLE IF NOT EXISTS refindex (
    hash TEXT PRIMARY KEY,
    tablename TEXT NOT NULL,
    recuid INTEGER NOT NULL,
    field TEXT NOT NULL,
    sorting INTEGER NOT NULL DEFAULT 0,
    softref_key TEXT NOT NULL DEFAULT '',
    ref_table TEXT NOT NULL,
    ref_uid INTEGER NOT NULL DEFAULT 0,
    ref_string TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS refindex_target
    ON refindex (ref_table, ref_string, softref_key);
"""

# Columns that find_records() accepts as equality filters
FILTER_COLUMNS = {
    "page_id",
    "language_id",
    "parent_record_id",
    "source_record_id",
    "deleted",
}


@dataclass
class Language:
    """A site language. Id 0 is the default language."""

    id: int
    title: str
    iso_code: str = ""

    @property
    def is_default(self) -> bool:
        return self.id == DEFAULT_LANGUAGE_ID


@dataclass
class Record:
    """A single row of a content table."""

    id: int
    table: str
    page_id: int
    language_id: int
    parent_record_id: int = 0
    source_record_id: int = 0
    sort_order: int = 0
    data: dict[str, Any] = field(default_factory=dict)
    deleted: bool = False

    def get(self, key: str, default: Any = None) -> Any:
        """Get a payload field."""
        return self.data.get(key, default)

    @property
    def is_translation(self) -> bool:
        """Check if this record is a linked translation of another record."""
        return self.language_id != DEFAULT_LANGUAGE_ID and self.parent_record_id > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "id": self.id,
            "table": self.table,
            "page_id": self.page_id,
            "language_id": self.language_id,
            "parent_record_id": self.parent_record_id,
            "source_record_id": self.source_record_id,
            "sort_order": self.sort_order,
            "deleted": self.deleted,
            "data": self.data,
        }


@dataclass
class ReferenceEntry:
    """A reference index row: one field of one record pointing somewhere."""

    table: str
    record_id: int
    field: str
    ref_table: str
    ref_uid: int = 0
    ref_string: str = ""
    softref_key: str = ""
    sorting: int = 0

    @property
    def is_soft(self) -> bool:
        """Soft references are found heuristically, e.g. in free text."""
        return self.softref_key != ""

    @property
    def hash(self) -> str:
        """Stable row identity, used as primary key of the index."""
        raw = "|".join(
            [
                self.table,
                str(self.record_id),
                self.field,
                self.softref_key,
                str(self.sorting),
                self.ref_table,
                str(self.ref_uid),
                self.ref_string,
            ]
        )
        return hashlib.md5(raw.encode("utf-8")).hexdigest()


class SiteDatabase:
    """Manages the site's SQLite database.

    The connection is opened lazily on first use. Use as a context manager
    to close it afterwards:

        with SiteDatabase() as db:
            db.siblings("content", page_id=1, language_id=0)
    """

    def __init__(self, db_path: Path | None = None):
        """Initialize database.

        Args:
            db_path: Path to site.db (uses default if not provided)
        """
        if db_path is None:
            db_path = get_paths().database
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> SiteDatabase:
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def connect(self) -> None:
        """Open the connection if it is not open yet."""
        if self._conn is not None:
            return
        try:
            self._conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        self._conn.row_factory = sqlite3.Row

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        self.connect()
        assert self._conn is not None
        return self._conn

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise StorageError(f"Database query failed: {e}") from e

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit the enclosed statements together, roll back on error."""
        try:
            with self.conn:
                yield self.conn
        except sqlite3.Error as e:
            raise StorageError(f"Database write failed: {e}") from e

    def initialize(self) -> None:
        """Create tables and indexes that do not exist yet."""
        try:
            self.conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialize schema in {self.db_path}: {e}") from e

    # -- languages ---------------------------------------------------------

    def add_language(self, language_id: int, title: str, iso_code: str = "") -> Language:
        """Add or rename a site language.

        Raises:
            InvalidArgument: For id 0, which is reserved for the default language
        """
        if language_id <= DEFAULT_LANGUAGE_ID:
            raise InvalidArgument(
                f"Language id must be greater than {DEFAULT_LANGUAGE_ID}, got {language_id}"
            )
        with self._transaction():
            self._execute(
                "INSERT OR REPLACE INTO languages (id, title, iso_code) VALUES (?, ?, ?)",
                (language_id, title, iso_code),
            )
        return Language(language_id, title, iso_code)

    def get_language(self, language_id: int) -> Language | None:
        if language_id == DEFAULT_LANGUAGE_ID:
            return Language(DEFAULT_LANGUAGE_ID, DEFAULT_LANGUAGE_TITLE)
        row = self._execute(
            "SELECT id, title, iso_code FROM languages WHERE id = ?", (language_id,)
        ).fetchone()
        if row is None:
            return None
        return Language(row["id"], row["title"], row["iso_code"])

    def languages(self) -> list[Language]:
        """All languages, default language first."""
        rows = self._execute("SELECT id, title, iso_code FROM languages ORDER BY id").fetchall()
        return [Language(DEFAULT_LANGUAGE_ID, DEFAULT_LANGUAGE_TITLE)] + [
            Language(row["id"], row["title"], row["iso_code"]) for row in rows
        ]

    # -- records -----------------------------------------------------------

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Record:
        return Record(
            id=row["id"],
            table=row["tablename"],
            page_id=row["page_id"],
            language_id=row["language_id"],
            parent_record_id=row["parent_record_id"],
            source_record_id=row["source_record_id"],
            sort_order=row["sort_order"],
            data=json.loads(row["data"]),
            deleted=bool(row["deleted"]),
        )

    def get_record(self, table: str, record_id: int) -> Record | None:
        """Get a record by id, or None if it does not exist."""
        row = self._execute(
            "SELECT * FROM records WHERE tablename = ? AND id = ?", (table, record_id)
        ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def siblings(
        self,
        table: str,
        page_id: int,
        language_id: int,
        include_deleted: bool = False,
    ) -> list[Record]:
        """Records of one page and language in display order."""
        sql = "SELECT * FROM records WHERE tablename = ? AND page_id = ? AND language_id = ?"
        if not include_deleted:
            sql += " AND deleted = 0"
        sql += " ORDER BY sort_order, id"
        rows = self._execute(sql, (table, page_id, language_id)).fetchall()
        return [self._row_to_record(row) for row in rows]

    def find_records(self, table: str, include_deleted: bool = False, **equals: Any) -> list[Record]:
        """Find records by an equality conjunction over record columns.

        Args:
            table: Content table name
            include_deleted: Also return soft-deleted records
            **equals: Column filters, e.g. page_id=1, language_id=0

        Raises:
            InvalidArgument: If a filter names an unknown column
        """
        unknown = set(equals) - FILTER_COLUMNS
        if unknown:
            raise InvalidArgument(f"Cannot filter records by: {', '.join(sorted(unknown))}")

        clauses = ["tablename = ?"]
        params: list[Any] = [table]
        for column, value in sorted(equals.items()):
            clauses.append(f"{column} = ?")
            params.append(int(value))
        if not include_deleted and "deleted" not in equals:
            clauses.append("deleted = 0")

        sql = f"SELECT * FROM records WHERE {' AND '.join(clauses)} ORDER BY sort_order, id"
        return [self._row_to_record(row) for row in self._execute(sql, params).fetchall()]

    def iter_records(self, table: str | None = None) -> Iterator[Record]:
        """Iterate over all records (deleted ones included)."""
        if table is None:
            cursor = self._execute("SELECT * FROM records ORDER BY id")
        else:
            cursor = self._execute("SELECT * FROM records WHERE tablename = ? ORDER BY id", (table,))
        for row in cursor:
            yield self._row_to_record(row)

    def insert_record(
        self,
        table: str,
        page_id: int,
        language_id: int,
        data: dict[str, Any],
        after: int | None = None,
        parent_record_id: int = 0,
        source_record_id: int = 0,
    ) -> Record:
        """Insert a record into the sibling list of its page and language.

        Args:
            table: Content table name
            page_id: Containing page
            language_id: Language of the new record
            data: Payload fields
            after: Id of the sibling to place the record after (None = top)
            parent_record_id: Default-language record this one translates
            source_record_id: Record this one was localized or copied from

        Returns:
            The stored record

        Raises:
            RecordNotFound: If ``after`` is not a sibling in that page and language
            StorageError: If the write fails
        """
        payload = json.dumps(data, ensure_ascii=False)
        with self._transaction():
            sort_order = self._sort_position(table, page_id, language_id, after)
            cursor = self._execute(
                "INSERT INTO records (tablename, page_id, language_id, parent_record_id,"
                " source_record_id, sort_order, data) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (table, page_id, language_id, parent_record_id, source_record_id, sort_order, payload),
            )
            record_id = cursor.lastrowid
        assert record_id is not None

        logger.debug(
            "Inserted %s:%d on page %d, language %d, sort_order %d",
            table, record_id, page_id, language_id, sort_order,
        )
        return Record(
            id=record_id,
            table=table,
            page_id=page_id,
            language_id=language_id,
            parent_record_id=parent_record_id,
            source_record_id=source_record_id,
            sort_order=sort_order,
            data=dict(data),
        )

    def update_record(self, record: Record) -> None:
        """Persist the payload and deleted flag of a record."""
        with self._transaction():
            cursor = self._execute(
                "UPDATE records SET data = ?, deleted = ? WHERE tablename = ? AND id = ?",
                (json.dumps(record.data, ensure_ascii=False), int(record.deleted), record.table, record.id),
            )
        if cursor.rowcount == 0:
            raise RecordNotFound(f"No record {record.table}:{record.id}", record.table, record.id)

    def delete_record(self, table: str, record_id: int) -> None:
        """Soft-delete a record. It keeps its row and reference index entries."""
        record = self.get_record(table, record_id)
        if record is None:
            raise RecordNotFound(f"No record {table}:{record_id}", table, record_id)
        record.deleted = True
        self.update_record(record)

    def _sort_position(self, table: str, page_id: int, language_id: int, after: int | None) -> int:
        """Compute the sort value for a record placed after ``after``.

        Renumbers the siblings when there is no free integer between the
        neighbours. Must run inside a transaction.
        """
        siblings = self.siblings(table, page_id, language_id)

        if after is None:
            if not siblings:
                return SORT_INTERVAL
            first = siblings[0].sort_order
            if first > 1:
                return first // 2
            self._renumber(siblings)
            return SORT_INTERVAL // 2

        ids = [sibling.id for sibling in siblings]
        if after not in ids:
            raise RecordNotFound(
                f"Record {table}:{after} is not on page {page_id} in language {language_id}",
                table,
                after,
            )
        index = ids.index(after)
        anchor = siblings[index].sort_order
        if index == len(siblings) - 1:
            return anchor + SORT_INTERVAL

        following = siblings[index + 1].sort_order
        if following - anchor > 1:
            return (anchor + following) // 2

        self._renumber(siblings)
        return (index + 1) * SORT_INTERVAL + SORT_INTERVAL // 2

    def _renumber(self, siblings: list[Record]) -> None:
        logger.debug("Renumbering %d siblings", len(siblings))
        for position, sibling in enumerate(siblings, 1):
            sibling.sort_order = position * SORT_INTERVAL
            self._execute(
                "UPDATE records SET sort_order = ? WHERE id = ?",
                (sibling.sort_order, sibling.id),
            )

    # -- reference index ---------------------------------------------------

    @staticmethod
    def _row_to_reference(row: sqlite3.Row) -> ReferenceEntry:
        return ReferenceEntry(
            table=row["tablename"],
            record_id=row["recuid"],
            field=row["field"],
            ref_table=row["ref_table"],
            ref_uid=row["ref_uid"],
            ref_string=row["ref_string"],
            softref_key=row["softref_key"],
            sorting=row["sorting"],
        )

    def add_references(self, entries: Iterable[ReferenceEntry]) -> int:
        """Write reference index rows. Existing identical rows are replaced.

        Returns:
            Number of rows written
        """
        rows = [
            (
                entry.hash,
                entry.table,
                entry.record_id,
                entry.field,
                entry.sorting,
                entry.softref_key,
                entry.ref_table,
                entry.ref_uid,
                entry.ref_string,
            )
            for entry in entries
        ]
        if not rows:
            return 0
        with self._transaction() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO refindex (hash, tablename, recuid, field, sorting,"
                " softref_key, ref_table, ref_uid, ref_string) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
        return len(rows)

    def delete_references(self, table: str, fields: Iterable[str], hard_only: bool = True) -> int:
        """Remove the index rows produced by some fields of a table.

        Returns:
            Number of rows removed
        """
        fields = list(fields)
        if not fields:
            return 0
        placeholders = ", ".join("?" for _ in fields)
        sql = f"DELETE FROM refindex WHERE tablename = ? AND field IN ({placeholders})"
        if hard_only:
            sql += " AND softref_key = ''"
        with self._transaction():
            cursor = self._execute(sql, [table, *fields])
        return cursor.rowcount

    def find_file_references(self, path: str, hard_only: bool = True) -> list[ReferenceEntry]:
        """Index rows that reference a file path.

        Args:
            path: File path relative to the site root, e.g. "uploads/pics/a.jpg"
            hard_only: Ignore soft references (softref_key != "")
        """
        sql = "SELECT * FROM refindex WHERE ref_table = ? AND ref_string = ?"
        params: list[Any] = [FILE_REFERENCE, path]
        if hard_only:
            sql += " AND softref_key = ?"
            params.append("")
        sql += " ORDER BY sorting DESC"
        return [self._row_to_reference(row) for row in self._execute(sql, params).fetchall()]

    def count_references(self) -> int:
        row = self._execute("SELECT COUNT(*) AS n FROM refindex").fetchone()
        return int(row["n"])


def open_site_database(site_root: Path | None = None) -> SiteDatabase:
    """Open the site database of an initialized site.

    Raises:
        FileNotFoundError: If the site has no database yet
    """
    db_path = get_paths(site_root).database
    if not db_path.exists():
        raise FileNotFoundError(f"No site database at {db_path}. Run 'cmsops init' first.")
    database = SiteDatabase(db_path)
    database.initialize()
    return database
