"""Tests for cmsops.core.backup module."""

import os
import time
from datetime import datetime

import pytest

from cmsops.core.backup import (
    TIMESTAMP_FORMAT,
    BackupInfo,
    backup_database,
    cleanup_old_backups,
    create_backup,
    list_backups,
    parse_backup_timestamp,
    rollback_database,
)


@pytest.fixture
def db_file(tmp_path):
    path = tmp_path / "site.db"
    path.write_bytes(b"current")
    return path


def _make_backup(backup_dir, stem, when: datetime, content=b"old"):
    backup_dir.mkdir(parents=True, exist_ok=True)
    path = backup_dir / f"{stem}_{when.strftime(TIMESTAMP_FORMAT)}.db"
    path.write_bytes(content)
    return path


class TestCreateBackup:
    """Tests for create_backup function."""

    def test_creates_backup_file(self, db_file, tmp_path):
        backup_path = create_backup(db_file, tmp_path / "backups")

        assert backup_path.exists()
        assert backup_path.read_bytes() == b"current"
        assert backup_path.name.startswith("site_")
        assert backup_path.suffix == ".db"

    def test_raises_for_nonexistent_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            create_backup(tmp_path / "missing.db")

    def test_same_second_gets_counter(self, db_file, tmp_path):
        """Two backups in the same second do not overwrite each other."""
        first = create_backup(db_file, tmp_path / "backups", timestamp_format="fixed")
        second = create_backup(db_file, tmp_path / "backups", timestamp_format="fixed")

        assert first != second
        assert second.name == "site_fixed_1.db"


class TestParseBackupTimestamp:
    def test_parses_valid_timestamp(self):
        ts = parse_backup_timestamp("site_20251212_144234.db")
        assert ts == datetime(2025, 12, 12, 14, 42, 34)

    def test_parses_counter_suffix(self):
        ts = parse_backup_timestamp("site_20251212_144234_2.db")
        assert ts == datetime(2025, 12, 12, 14, 42, 34)

    def test_returns_none_for_invalid(self):
        assert parse_backup_timestamp("site.db") is None


class TestListBackups:
    def test_newest_first(self, tmp_path):
        backup_dir = tmp_path / "backups"
        _make_backup(backup_dir, "site", datetime(2025, 1, 1))
        _make_backup(backup_dir, "site", datetime(2025, 3, 1))
        _make_backup(backup_dir, "site", datetime(2025, 2, 1))

        backups = list_backups(backup_dir, "site")

        assert [b.timestamp.month for b in backups] == [3, 2, 1]
        assert all(isinstance(b, BackupInfo) for b in backups)

    def test_filters_by_db_name(self, tmp_path):
        backup_dir = tmp_path / "backups"
        _make_backup(backup_dir, "site", datetime(2025, 1, 1))
        _make_backup(backup_dir, "other", datetime(2025, 1, 1))

        backups = list_backups(backup_dir, "site")
        assert len(backups) == 1
        assert backups[0].db_name == "site"

    def test_returns_empty_for_nonexistent_dir(self, tmp_path):
        assert list_backups(tmp_path / "missing") == []

    def test_size_human(self, tmp_path):
        path = _make_backup(tmp_path / "b", "site", datetime(2025, 1, 1), content=b"x" * 2048)
        info = list_backups(path.parent, "site")[0]
        assert info.size_human == "2.0 KB"


class TestCleanupOldBackups:
    def test_keeps_newest(self, tmp_path):
        backup_dir = tmp_path / "backups"
        for day in range(1, 6):
            path = _make_backup(backup_dir, "site", datetime(2020, 1, day))
            mtime = time.time() - (10 - day) * 60
            os.utime(path, (mtime, mtime))

        removed = cleanup_old_backups(backup_dir, "site_*.db", keep_last=2)

        assert len(removed) == 3
        assert len(list(backup_dir.glob("site_*.db"))) == 2

    def test_keep_days_protects_recent(self, tmp_path):
        backup_dir = tmp_path / "backups"
        _make_backup(backup_dir, "site", datetime.now())
        _make_backup(backup_dir, "site", datetime(2020, 1, 1))

        removed = cleanup_old_backups(backup_dir, "site_*.db", keep_last=0, keep_days=30)

        assert len(removed) == 1
        assert "2020" in removed[0].name


class TestBackupDatabase:
    def test_returns_none_without_database(self, tmp_path):
        assert backup_database(tmp_path / "site.db", tmp_path / "backups") is None

    def test_creates_backup(self, db_file, tmp_path):
        path = backup_database(db_file, tmp_path / "backups")
        assert path is not None
        assert path.read_bytes() == b"current"


class TestRollbackDatabase:
    def test_restores_most_recent(self, db_file, tmp_path):
        backup_dir = tmp_path / "backups"
        _make_backup(backup_dir, "site", datetime(2025, 1, 1), content=b"older")
        _make_backup(backup_dir, "site", datetime(2025, 2, 1), content=b"newer")

        restored = rollback_database(db_file, backup_dir)

        assert db_file.read_bytes() == b"newer"
        assert "20250201" in restored.name

    def test_restore_by_index_backs_up_current(self, db_file, tmp_path):
        backup_dir = tmp_path / "backups"
        _make_backup(backup_dir, "site", datetime(2025, 1, 1), content=b"older")
        _make_backup(backup_dir, "site", datetime(2025, 2, 1), content=b"newer")

        rollback_database(db_file, backup_dir, backup_index=1)

        assert db_file.read_bytes() == b"older"
        contents = [b.path.read_bytes() for b in list_backups(backup_dir, "site")]
        assert b"current" in contents

    def test_no_backups_raises(self, db_file, tmp_path):
        with pytest.raises(FileNotFoundError):
            rollback_database(db_file, tmp_path / "backups")

    def test_index_out_of_range_raises(self, db_file, tmp_path):
        backup_dir = tmp_path / "backups"
        _make_backup(backup_dir, "site", datetime(2025, 1, 1))
        with pytest.raises(FileNotFoundError, match="out of range"):
            rollback_database(db_file, backup_dir, backup_index=5)
