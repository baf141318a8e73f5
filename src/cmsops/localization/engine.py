"""
Localization and copy engine.

Creates records of a page in another language, either as linked
translations (LOCALIZE) or as independent copies (COPY), keeping the
relative order of the source records in the destination language.

Placement rules:
  - The first record of a batch goes right after the destination
    counterpart of the nearest preceding source sibling that has one,
    or to the top of the destination list when none has.
  - Every further record goes right after the record created for the
    previous item of the batch.

A batch stops at the first failing record. Records created before the
failure are kept (there is no rollback); the LocalizationError raised
lists them.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from enum import Enum
from typing import Any

from cmsops.core.database import DEFAULT_LANGUAGE_ID, Language, Record, SiteDatabase
from cmsops.core.errors import (
    CmsopsError,
    InvalidArgument,
    LocalizationError,
    RecordNotFound,
)
from cmsops.localization.transforms import (
    DEFAULT_LABEL_TEMPLATE,
    TransformContext,
    TransformRegistry,
    default_registry,
)

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "content"


class Action(Enum):
    """What to create in the destination language."""

    LOCALIZE = "localize"  # linked translation
    COPY = "copy"  # independent record, no link to the source

    @classmethod
    def parse(cls, value: Action | str) -> Action:
        """Accept an Action or its string value.

        Raises:
            InvalidArgument: For anything else
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.lower())
            except ValueError:
                pass
        valid = ", ".join(a.value for a in cls)
        raise InvalidArgument(f"Unknown action {value!r}, expected one of: {valid}")


class LocalizationEngine:
    """Localizes or copies content records between languages of a page."""

    def __init__(
        self,
        database: SiteDatabase,
        transforms: TransformRegistry | None = None,
        translatable_fields: dict[str, list[str]] | None = None,
        prefix_on_copy: bool = True,
        label_template: str = DEFAULT_LABEL_TEMPLATE,
    ):
        """Initialize engine.

        Args:
            database: Site database holding the records
            transforms: Field transforms (defaults to the built-in label prefix)
            translatable_fields: Table name -> fields passed through transforms
            prefix_on_copy: Apply transforms when copying too
            label_template: Template for the default label transform
        """
        self.database = database
        self.transforms = transforms if transforms is not None else default_registry(label_template)
        self.translatable_fields = translatable_fields or {DEFAULT_TABLE: ["header", "bodytext"]}
        self.prefix_on_copy = prefix_on_copy

    def process(
        self,
        page_id: int,
        source_language_id: int,
        dest_language_id: int,
        record_ids: Iterable[int],
        action: Action | str,
        table: str = DEFAULT_TABLE,
    ) -> list[Record]:
        """Localize or copy records of a page into another language.

        Args:
            page_id: Page the records live on
            source_language_id: Language of the source records
            dest_language_id: Language to create records in
            record_ids: Source record ids, processed in this order
            action: Action.LOCALIZE or Action.COPY
            table: Content table name

        Returns:
            The destination records in input order. For LOCALIZE this
            includes translations that already existed.

        Raises:
            InvalidArgument: Bad action or languages (nothing written)
            LocalizationError: A record failed; earlier records were kept
        """
        action = Action.parse(action)
        source_language, dest_language = self._check_languages(source_language_id, dest_language_id)

        ids = _unique(record_ids)
        results: list[Record] = []
        created: list[int] = []
        previous: Record | None = None

        logger.info(
            "%s %d record(s) on page %d from language %d to %d",
            action.value.capitalize(), len(ids), page_id, source_language_id, dest_language_id,
        )

        for record_id in ids:
            try:
                source = self._fetch_source(table, record_id, page_id, source_language_id)
                if previous is None:
                    after = self._first_anchor(source, dest_language_id)
                else:
                    after = previous.id

                if action is Action.LOCALIZE:
                    record, is_new = self._localize(source, source_language, dest_language, after)
                else:
                    record, is_new = self._copy(source, source_language, dest_language, after), True
            except CmsopsError as e:
                logger.warning("Stopped at record %s:%d: %s", table, record_id, e)
                raise LocalizationError(
                    f"Could not {action.value} record {record_id}: {e}",
                    failed_record_id=record_id,
                    created=created,
                ) from e

            if is_new:
                created.append(record.id)
            results.append(record)
            previous = record

        logger.info("Created %d record(s)", len(created))
        return results

    def _check_languages(self, source_language_id: int, dest_language_id: int) -> tuple[Language, Language]:
        if source_language_id == dest_language_id:
            raise InvalidArgument("Source and destination language must differ")
        if dest_language_id == DEFAULT_LANGUAGE_ID:
            raise InvalidArgument("Cannot localize into the default language")

        source_language = self.database.get_language(source_language_id)
        if source_language is None:
            raise InvalidArgument(f"Unknown source language {source_language_id}")
        dest_language = self.database.get_language(dest_language_id)
        if dest_language is None:
            raise InvalidArgument(f"Unknown destination language {dest_language_id}")
        return source_language, dest_language

    def _fetch_source(self, table: str, record_id: int, page_id: int, language_id: int) -> Record:
        record = self.database.get_record(table, record_id)
        if record is None or record.deleted:
            raise RecordNotFound(f"Record {table}:{record_id} does not exist", table, record_id)
        if record.page_id != page_id:
            raise RecordNotFound(f"Record {table}:{record_id} is not on page {page_id}", table, record_id)
        if record.language_id != language_id:
            raise RecordNotFound(
                f"Record {table}:{record_id} is not in language {language_id}", table, record_id
            )
        return record

    def _first_anchor(self, source: Record, dest_language_id: int) -> int | None:
        """Destination record to place the first record of a batch after.

        Walks back through the source record's own-language siblings and
        returns the counterpart of the first one that has one.
        """
        siblings = self.database.siblings(source.table, source.page_id, source.language_id)
        ids = [s.id for s in siblings]
        preceding = siblings[: ids.index(source.id)]

        destination = self.database.siblings(source.table, source.page_id, dest_language_id)
        for sibling in reversed(preceding):
            counterpart = _counterpart(sibling, destination)
            if counterpart is not None:
                logger.debug("Anchoring after %d (counterpart of %d)", counterpart.id, sibling.id)
                return counterpart.id
        return None

    def _existing_translation(self, table: str, page_id: int, dest_language_id: int, parent_id: int) -> Record | None:
        found = self.database.find_records(
            table, page_id=page_id, language_id=dest_language_id, parent_record_id=parent_id
        )
        return found[0] if found else None

    def _localize(
        self,
        source: Record,
        source_language: Language,
        dest_language: Language,
        after: int | None,
    ) -> tuple[Record, bool]:
        # Translations always point at the default-language record
        parent_id = source.parent_record_id if source.is_translation else source.id

        existing = self._existing_translation(source.table, source.page_id, dest_language.id, parent_id)
        if existing is not None:
            logger.warning(
                "Record %s:%d already has translation %d in language %d, skipping",
                source.table, parent_id, existing.id, dest_language.id,
            )
            return existing, False

        data = self._transform_fields(source, source_language, dest_language, Action.LOCALIZE)
        record = self.database.insert_record(
            source.table,
            source.page_id,
            dest_language.id,
            data,
            after=after,
            parent_record_id=parent_id,
            source_record_id=source.id,
        )
        logger.debug("Localized %s:%d as %d", source.table, source.id, record.id)
        return record, True

    def _copy(
        self,
        source: Record,
        source_language: Language,
        dest_language: Language,
        after: int | None,
    ) -> Record:
        if self.prefix_on_copy:
            data = self._transform_fields(source, source_language, dest_language, Action.COPY)
        else:
            data = copy.deepcopy(source.data)
        record = self.database.insert_record(
            source.table,
            source.page_id,
            dest_language.id,
            data,
            after=after,
            parent_record_id=0,
            source_record_id=source.id,
        )
        logger.debug("Copied %s:%d as %d", source.table, source.id, record.id)
        return record

    def _transform_fields(
        self,
        source: Record,
        source_language: Language,
        dest_language: Language,
        action: Action,
    ) -> dict[str, Any]:
        data = copy.deepcopy(source.data)
        for field_name in self.translatable_fields.get(source.table, []):
            if field_name not in data:
                continue
            context = TransformContext(
                source_language=source_language,
                dest_language=dest_language,
                action=action.value,
                table=source.table,
                field=field_name,
            )
            data[field_name] = self.transforms.apply(data[field_name], context)
        return data

    def used_languages(
        self,
        page_id: int,
        exclude_language_id: int | None = None,
        table: str = DEFAULT_TABLE,
    ) -> list[Language]:
        """Languages that have records on a page.

        Args:
            page_id: Page to inspect
            exclude_language_id: Leave this language out (usually the destination)
            table: Content table name
        """
        used = []
        for language in self.database.languages():
            if language.id == exclude_language_id:
                continue
            if self.database.siblings(table, page_id, language.id):
                used.append(language)
        return used

    def localize_summary(
        self,
        page_id: int,
        dest_language_id: int,
        source_language_id: int = DEFAULT_LANGUAGE_ID,
        table: str = DEFAULT_TABLE,
    ) -> list[Record]:
        """Source records of a page that have no translation in the destination yet."""
        destination = self.database.siblings(table, page_id, dest_language_id)
        translated = {r.parent_record_id for r in destination if r.parent_record_id}
        pending = []
        for record in self.database.siblings(table, page_id, source_language_id):
            parent_id = record.parent_record_id if record.is_translation else record.id
            if parent_id not in translated:
                pending.append(record)
        return pending


def _counterpart(source: Record, destination: list[Record]) -> Record | None:
    """The destination record derived from ``source``, if any."""
    for record in destination:
        if record.source_record_id == source.id:
            return record
    for record in destination:
        if record.parent_record_id and record.parent_record_id in (source.id, source.parent_record_id):
            return record
    return None


def _unique(record_ids: Iterable[int]) -> list[int]:
    """Drop repeated ids, keeping the first occurrence."""
    seen: set[int] = set()
    result = []
    for record_id in record_ids:
        record_id = int(record_id)
        if record_id not in seen:
            seen.add(record_id)
            result.append(record_id)
    return result
