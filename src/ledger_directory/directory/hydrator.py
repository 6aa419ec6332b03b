"""Per-identifier detail fetching with typed failures.

The hydrator turns one identifier into one validated raw record.  It decides
nothing about the rest of a batch: callers fan out over identifiers and
decide what a :exc:`HydrationError` means for them (the synchronizer skips the
item and carries on).
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from ledger_directory.ledger.client import LedgerError
from ledger_directory.ledger.records import RawListingRecord, RawReviewRecord
from ledger_directory.ledger.surfaces import CollectionKind, ReadSurface

logger = logging.getLogger(__name__)

RawRecord = RawListingRecord | RawReviewRecord

_RECORD_MODELS: dict[CollectionKind, type[RawListingRecord] | type[RawReviewRecord]] = {
    CollectionKind.LISTINGS: RawListingRecord,
    CollectionKind.REVIEWS: RawReviewRecord,
}


class HydrationError(Exception):
    """Fetching or validating one identifier's record failed.

    Attributes:
        identifier: The identifier that could not be hydrated.
        cause: The transport or validation error behind the failure.
    """

    def __init__(self, identifier: str, cause: Exception) -> None:
        super().__init__(f"hydrating {identifier!r} failed: {cause}")
        self.identifier = identifier
        self.cause = cause


class EntityHydrator:
    """Fetch detail records for one collection."""

    def __init__(self, reader: ReadSurface, kind: CollectionKind) -> None:
        self.reader = reader
        self.kind = kind
        self._model = _RECORD_MODELS[kind]

    async def hydrate(self, identifier: str) -> RawRecord | None:
        """Fetch and validate the record for ``identifier``.

        Returns:
            The validated record, or None when the ledger has no record, the
            record is inactive, or it has a blank name (the zero value the
            contract returns for unknown listing ids).

        Raises:
            HydrationError: On a transport failure for this identifier or a
                record that does not validate.
        """
        try:
            detail = await self.reader.fetch_detail(self.kind, identifier)
        except (LedgerError, OSError) as e:
            raise HydrationError(identifier, e) from e

        if detail is None:
            return None

        try:
            record = self._model.model_validate(detail)
        except ValidationError as e:
            raise HydrationError(identifier, e) from e

        if not record.active:
            logger.debug("Skipping inactive %s record %s", self.kind.value, identifier)
            return None
        if isinstance(record, RawListingRecord) and not record.name.strip():
            return None
        return record
