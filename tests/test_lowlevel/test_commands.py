"""Tests for cmsops.lowlevel.commands CLI module."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from cmsops.lowlevel.commands import cleanup


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def upload_site(site_db, create_upload):
    """Site with one referenced upload, one lost upload and one exempt file."""
    site_db.insert_record("content", 1, 0, {"header": "a", "media": "uploads/used.jpg"})
    create_upload("uploads/used.jpg")
    create_upload("uploads/lost.jpg")
    create_upload("uploads/index.html")
    return site_db


def test_dry_run_lists_without_deleting(runner, upload_site, mock_site_root):
    result = runner.invoke(cleanup, ["lost-files", "--dry-run", "--update-refindex", "--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["lost"] == ["uploads/lost.jpg"]
    assert data["would_delete"] == ["uploads/lost.jpg"]
    assert (mock_site_root / "uploads" / "lost.jpg").exists()


def test_deletes_lost_files(runner, upload_site, mock_site_root):
    result = runner.invoke(cleanup, ["lost-files", "--update-refindex"])

    assert result.exit_code == 0, result.output
    assert "Deleted 1 lost file(s)" in result.output
    assert not (mock_site_root / "uploads" / "lost.jpg").exists()
    assert (mock_site_root / "uploads" / "used.jpg").exists()
    assert (mock_site_root / "uploads" / "index.html").exists()


def test_stale_index_without_rebuild(runner, upload_site, mock_site_root):
    """With -n the index is trusted as is; an empty index means every file is lost."""
    result = runner.invoke(cleanup, ["lost-files", "-n", "--dry-run", "--json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["lost"] == ["uploads/lost.jpg", "uploads/used.jpg"]


def test_asks_before_rebuilding(runner, upload_site):
    with patch("cmsops.core.prompts.confirm", return_value=True) as mock_confirm:
        result = runner.invoke(cleanup, ["lost-files", "--dry-run"])

    assert result.exit_code == 0, result.output
    mock_confirm.assert_called_once()
    assert "Reference index updated" in result.output
    assert "would delete 1 file(s)" in result.output


def test_declined_rebuild_trusts_index(runner, upload_site):
    with patch("cmsops.core.prompts.confirm", return_value=False):
        result = runner.invoke(cleanup, ["lost-files", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "assumed to be up to date" in result.output


def test_exclude_option(runner, upload_site, create_upload):
    create_upload("uploads/pics/a.jpg")

    result = runner.invoke(
        cleanup, ["lost-files", "--update-refindex", "--dry-run", "--json", "--exclude", "uploads/pics"]
    )

    assert json.loads(result.output)["lost"] == ["uploads/lost.jpg"]


def test_exclude_setting(runner, upload_site, create_upload, mock_site_root):
    create_upload("uploads/pics/a.jpg")
    (mock_site_root / ".cmsops" / "config.yaml").write_text("uploads:\n  exclude:\n    - uploads/pics\n")

    result = runner.invoke(cleanup, ["lost-files", "--update-refindex", "--dry-run", "--json"])

    assert json.loads(result.output)["lost"] == ["uploads/lost.jpg"]


def test_nothing_to_do(runner, site_db):
    result = runner.invoke(cleanup, ["lost-files", "-n"])

    assert result.exit_code == 0
    assert "Nothing to do" in result.output


def test_upload_root_setting_outside_site(runner, site_db, mock_site_root):
    (mock_site_root / ".cmsops" / "config.yaml").write_text("uploads:\n  root: ../elsewhere\n")

    result = runner.invoke(cleanup, ["lost-files", "-n"])

    assert result.exit_code == 1


def test_refindex_command(runner, upload_site):
    result = runner.invoke(cleanup, ["refindex"])

    assert result.exit_code == 0, result.output
    assert "Reference index updated" in result.output
    assert upload_site.count_references() == 1


def test_without_database(runner, mock_site_root):
    result = runner.invoke(cleanup, ["refindex"])
    assert result.exit_code == 1


def test_global_dry_run_keeps_files(runner, upload_site, mock_site_root):
    from cmsops.cli import main

    result = runner.invoke(main, ["-n", "cleanup", "lost-files", "-n"])

    assert result.exit_code == 0, result.output
    assert "DRY RUN - would delete" in result.output
    assert (mock_site_root / "uploads" / "lost.jpg").exists()
    assert (mock_site_root / "uploads" / "used.jpg").exists()


def test_global_dry_run_skips_index_rebuild(runner, upload_site):
    from cmsops.cli import main

    result = runner.invoke(main, ["-n", "cleanup", "lost-files", "--update-refindex", "--json"])

    assert result.exit_code == 0, result.output
    assert upload_site.count_references() == 0


def test_refindex_global_dry_run(runner, upload_site):
    from cmsops.cli import main

    result = runner.invoke(main, ["-n", "cleanup", "refindex"])

    assert result.exit_code == 0
    assert upload_site.count_references() == 0


def test_lost_files_outside_site(runner, monkeypatch):
    from cmsops.core import config

    def no_site():
        raise FileNotFoundError("No .cmsops/ directory found")

    config.get_site_root.cache_clear()
    monkeypatch.setattr(config, "get_site_root", no_site)

    result = runner.invoke(cleanup, ["lost-files", "-n"])

    assert result.exit_code == 1
    assert "No .cmsops/ directory found" in result.output
