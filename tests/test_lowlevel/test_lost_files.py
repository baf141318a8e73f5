"""Tests for cmsops.lowlevel.lost_files module."""

from pathlib import Path

import pytest

from cmsops.core.database import FILE_REFERENCE, ReferenceEntry
from cmsops.core.errors import InvalidArgument
from cmsops.lowlevel.lost_files import (
    DeletionReport,
    LostFilesDetector,
    is_excluded,
    is_exempt,
    parse_exclude_option,
)
from cmsops.lowlevel.refindex import ReferenceIndex


@pytest.fixture
def detector(site_db, mock_site_root):
    return LostFilesDetector(mock_site_root, ReferenceIndex(site_db))


def _reference(database, path, softref_key=""):
    database.add_references([
        ReferenceEntry(
            table="content",
            record_id=1,
            field="media",
            ref_table=FILE_REFERENCE,
            ref_string=path,
            softref_key=softref_key,
        )
    ])


class TestHelpers:
    @pytest.mark.parametrize("path", [
        "uploads/index.html",
        "uploads/deep/dir/.htaccess",
        "uploads/RTEmagicC_photo.jpg",
        "uploads/RTEmagicP_photo.jpg",
        "uploads/RTEmagic|_photo.jpg",
    ])
    def test_exempt(self, path):
        assert is_exempt(path)

    @pytest.mark.parametrize("path", [
        "uploads/index.htm",
        "uploads/my_index.html",
        "uploads/RTEmagicX_photo.jpg",
        "uploads/photo_RTEmagicC_.jpg",
    ])
    def test_not_exempt(self, path):
        assert not is_exempt(path)

    def test_excluded_is_plain_prefix(self):
        assert is_excluded("uploads/pics/a.jpg", ["uploads/pics"])
        assert is_excluded("uploads/pictures/a.jpg", ["uploads/pic"])
        assert not is_excluded("uploads/media/a.jpg", ["uploads/pics"])
        assert not is_excluded("uploads/media/a.jpg", [""])

    def test_parse_exclude_option(self):
        assert parse_exclude_option("uploads/pics, uploads/media,,") == ["uploads/pics", "uploads/media"]
        assert parse_exclude_option(None) == []
        assert parse_exclude_option("") == []


class TestFindOrphans:
    def test_unreferenced_file_is_lost(self, detector, create_upload):
        create_upload("uploads/lost.jpg")
        assert detector.find_orphans("uploads") == ["uploads/lost.jpg"]

    def test_referenced_file_is_kept(self, site_db, detector, create_upload):
        create_upload("uploads/used.jpg")
        _reference(site_db, "uploads/used.jpg")
        assert detector.find_orphans("uploads") == []

    def test_soft_reference_does_not_protect(self, site_db, detector, create_upload):
        create_upload("uploads/soft.jpg")
        _reference(site_db, "uploads/soft.jpg", softref_key="images")
        assert detector.find_orphans("uploads") == ["uploads/soft.jpg"]

    def test_exempt_files_never_reported(self, detector, create_upload):
        create_upload("uploads/index.html")
        create_upload("uploads/sub/.htaccess")
        create_upload("uploads/RTEmagicC_a.jpg")
        create_upload("uploads/RTEmagicP_a.jpg")
        assert detector.find_orphans("uploads") == []

    def test_excluded_prefixes(self, detector, create_upload):
        create_upload("uploads/pics/a.jpg")
        create_upload("uploads/media/b.pdf")

        lost = detector.find_orphans("uploads", ["uploads/pics"])

        assert lost == ["uploads/media/b.pdf"]

    def test_paths_are_site_relative_and_sorted(self, detector, create_upload):
        create_upload("uploads/b/2.jpg")
        create_upload("uploads/a/1.jpg")
        create_upload("uploads/z.jpg")

        assert detector.find_orphans("uploads") == [
            "uploads/z.jpg",
            "uploads/a/1.jpg",
            "uploads/b/2.jpg",
        ]

    def test_absolute_upload_root(self, detector, create_upload, mock_site_root):
        create_upload("uploads/a.jpg")
        assert detector.find_orphans(mock_site_root / "uploads") == ["uploads/a.jpg"]

    def test_files_outside_upload_root_ignored(self, detector, create_upload):
        create_upload("other/a.jpg")
        assert detector.find_orphans("uploads") == []

    def test_missing_upload_root(self, detector):
        assert detector.find_orphans("nowhere") == []

    def test_upload_root_outside_site(self, detector, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        with pytest.raises(InvalidArgument):
            detector.find_orphans(outside)

    def test_symlinks_skipped(self, detector, create_upload, mock_site_root):
        target = create_upload("other/real.jpg")
        (mock_site_root / "uploads" / "link.jpg").symlink_to(target)
        assert detector.find_orphans("uploads") == []


class TestDeleteOrphans:
    def test_deletes_files(self, detector, create_upload):
        path = create_upload("uploads/lost.jpg")

        report = detector.delete_orphans(["uploads/lost.jpg"])

        assert not path.exists()
        assert report.deleted == ["uploads/lost.jpg"]
        assert report.deleted_count == 1
        assert not report.has_problems

    def test_dry_run_keeps_files(self, detector, create_upload):
        paths = [create_upload(f"uploads/{name}.jpg") for name in ("a", "b")]

        report = detector.delete_orphans(["uploads/a.jpg", "uploads/b.jpg"], dry_run=True)

        assert all(p.exists() for p in paths)
        assert report.dry_run
        assert report.deleted_count == 0
        assert report.would_delete == ["uploads/a.jpg", "uploads/b.jpg"]

    def test_missing_file_does_not_stop_batch(self, detector, create_upload):
        create_upload("uploads/b.jpg")

        report = detector.delete_orphans(["uploads/a.jpg", "uploads/b.jpg"])

        assert report.not_found == ["uploads/a.jpg"]
        assert report.deleted == ["uploads/b.jpg"]
        assert report.has_problems

    def test_file_vanishing_at_delete_time(self, detector, create_upload, monkeypatch):
        create_upload("uploads/a.jpg")

        def vanish(self, missing_ok=False):
            raise FileNotFoundError(str(self))

        monkeypatch.setattr(Path, "unlink", vanish)
        report = detector.delete_orphans(["uploads/a.jpg"])

        assert report.not_found == ["uploads/a.jpg"]
        assert report.deleted == []

    def test_failed_delete_recorded(self, detector, create_upload, monkeypatch):
        create_upload("uploads/a.jpg")
        create_upload("uploads/b.jpg")
        real_unlink = Path.unlink

        def unlink(self, missing_ok=False):
            if self.name == "a.jpg":
                raise PermissionError("read-only")
            real_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", unlink)
        report = detector.delete_orphans(["uploads/a.jpg", "uploads/b.jpg"])

        assert "read-only" in report.failed["uploads/a.jpg"]
        assert report.deleted == ["uploads/b.jpg"]

    def test_refuses_paths_outside_site(self, detector):
        report = detector.delete_orphans(["../escape.txt"])
        assert "../escape.txt" in report.failed
        assert report.deleted == []

    def test_report_to_dict(self):
        report = DeletionReport(deleted=["a"], not_found=["b"])
        data = report.to_dict()
        assert data["deleted"] == 1
        assert data["deleted_files"] == ["a"]
        assert data["not_found"] == ["b"]
