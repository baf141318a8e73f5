"""Exceptions raised by cmsops library code."""

from __future__ import annotations


class CmsopsError(Exception):
    """Base exception for cmsops errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidArgument(CmsopsError, ValueError):
    """Bad action or parameters passed by the caller."""
    pass


class RecordNotFound(CmsopsError, LookupError):
    """A record does not exist where the caller expected it."""

    def __init__(self, message: str, table: str | None = None, record_id: int | None = None):
        self.table = table
        self.record_id = record_id
        super().__init__(message)


class StorageError(CmsopsError):
    """The relational store failed to read or write."""
    pass


class LocalizationError(CmsopsError):
    """A localization batch stopped before all records were processed.

    Records created before the failure are kept; ``created`` lists their ids
    and ``failed_record_id`` names the source record that could not be
    processed. The underlying error is chained as ``__cause__``.
    """

    def __init__(self, message: str, failed_record_id: int, created: list[int]):
        self.failed_record_id = failed_record_id
        self.created = created
        super().__init__(message)
