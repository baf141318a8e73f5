"""Low-level maintenance: reference index rebuild and lost file cleanup."""

from cmsops.lowlevel.lost_files import DeletionReport, LostFilesDetector
from cmsops.lowlevel.refindex import RebuildStats, ReferenceIndex

__all__ = [
    "LostFilesDetector",
    "DeletionReport",
    "ReferenceIndex",
    "RebuildStats",
]
