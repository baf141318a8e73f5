"""Shared test fixtures for cmsops package."""

import logging

import pytest

from cmsops.core.database import SiteDatabase


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def mock_site_root(tmp_path, monkeypatch):
    """Create a mock site structure with .cmsops/ directory."""
    data_dir = tmp_path / ".cmsops"
    data_dir.mkdir()
    (data_dir / "backups").mkdir()
    (tmp_path / "uploads").mkdir()

    # Mock get_site_root to return our tmp_path
    from cmsops.core import config
    # Clear the lru_cache first
    config.get_site_root.cache_clear()
    monkeypatch.setattr(config, "get_site_root", lambda: tmp_path)

    return tmp_path


@pytest.fixture
def site_db(mock_site_root):
    """Initialized site database with Danish (1) and German (2) languages."""
    database = SiteDatabase(mock_site_root / ".cmsops" / "site.db")
    database.initialize()
    database.add_language(1, "Dansk", "da")
    database.add_language(2, "Deutsch", "de")
    yield database
    database.close()


@pytest.fixture
def seeded_page(site_db):
    """Page 1 with three default-language records, in display order."""
    records = []
    after = None
    for i in (1, 2, 3):
        record = site_db.insert_record(
            "content", 1, 0, {"header": f"Test content {i}", "bodytext": f"Body {i}"}, after=after
        )
        records.append(record)
        after = record.id
    return records


@pytest.fixture
def create_upload(mock_site_root):
    """Factory fixture for creating files below the site root."""
    def _create(relative: str, content: str = "data"):
        path = mock_site_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path

    return _create
