"""
Directory synchronizer.

Keeps the local listing collection in step with the ledger.  Every refresh is
a full re-read; there is no partial-update merge logic, which keeps the local
view trivially correct for the small collections a directory holds.

Pipeline (one refresh)
----------------------
1. ``enumerate`` every listing identifier.  An empty list is an empty
   directory, not an error.
2. Hydrate each identifier concurrently (bounded by ``max_concurrency``).
   A failing identifier is logged, published as ``directory:item_skipped``
   and dropped.  It never fails the refresh and is never replaced by
   placeholder data.
3. Keep the records the hydrator returned (active, with a non-blank name).
4. Normalize numeric fields (rating, timestamps).
5. Keep ledger enumeration order.
6. Commit the new :class:`DirectorySnapshot` in one assignment and publish
   ``directory:refreshed``.

When the ledger cannot be reached at all, the refresh raises
:exc:`DirectoryUnavailableError` and commits an empty snapshot flagged
``available=False``.  Consumers render an explicit "could not load" state
from it.

Abandonment
-----------
A caller that loses interest in a refresh calls ``ticket.abandon()``.  Reads
already in flight complete, but their result is not committed.  A refresh
that finishes after a newer one has committed is dropped the same way.

Post-settlement re-check
------------------------
The read surface may lag behind a just-settled write.  ``refresh(expect=...)``
re-reads up to ``recheck_attempts`` more times, ``recheck_delay`` seconds
apart, until ``expect(listings)`` holds.  The last successful read is
committed whether or not the expectation was ever met.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from ledger_directory.core.bus import (
    DIRECTORY_ITEM_SKIPPED,
    DIRECTORY_REFRESHED,
    DIRECTORY_UNAVAILABLE,
    REVIEWS_REFRESHED,
    REVIEWS_UNAVAILABLE,
    DirectoryBus,
)
from ledger_directory.directory.hydrator import EntityHydrator, HydrationError, RawRecord
from ledger_directory.directory.numeric import timestamp_to_datetime, to_display_rating
from ledger_directory.directory.types import DirectorySnapshot, ErrorKind, Listing, Review
from ledger_directory.ledger.client import LedgerError
from ledger_directory.ledger.records import RawListingRecord, RawReviewRecord
from ledger_directory.ledger.surfaces import CollectionKind, ReadSurface

logger = logging.getLogger(__name__)

# Browse tags per category, as the directory has always presented them
CATEGORY_TAGS: dict[str, tuple[str, ...]] = {
    "DeFi": ("Finance", "Trading", "DeFi"),
    "Social": ("Social", "Community", "Network"),
    "Games": ("Gaming", "NFT", "Entertainment"),
    "NFTs": ("NFT", "Art", "Collectibles"),
    "Tools": ("Tools", "Utility", "Developer"),
    "Infrastructure": ("Infrastructure", "Protocol", "Network"),
}

ListingExpectation = Callable[[Sequence[Listing]], bool]


class DirectoryUnavailableError(Exception):
    """The ledger's read surface could not be reached for a collection."""

    kind = ErrorKind.UNAVAILABLE

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


@dataclass
class RefreshTicket:
    """Handle on one pending refresh.

    Attributes:
        generation: Issue order of the refresh; later refreshes win.
        abandoned: Set by :meth:`abandon`; the result will not be committed.
    """

    generation: int
    abandoned: bool = False

    def abandon(self) -> None:
        self.abandoned = True


def tags_for_category(category: str) -> tuple[str, ...]:
    """Browse tags for ``category``; unknown categories tag themselves."""
    if category in CATEGORY_TAGS:
        return CATEGORY_TAGS[category]
    return (category,) if category else ()


def _to_listing(record: RawListingRecord, *, featured: bool) -> Listing:
    return Listing(
        identifier=record.identifier,
        name=record.name,
        description=record.description,
        category=record.category,
        external_url=record.external_url,
        image_url=record.image_url,
        owner_address=record.owner_address,
        rating=to_display_rating(record.rating_raw, record.review_count),
        review_count=record.review_count,
        created_at=timestamp_to_datetime(record.created_at),
        tags=tags_for_category(record.category),
        featured=featured,
    )


def _to_review(record: RawReviewRecord) -> Review:
    return Review(
        identifier=record.identifier,
        listing_identifier=record.listing_identifier,
        author_address=record.author_address,
        rating_stars=record.rating_stars,
        comment=record.comment,
        created_at=timestamp_to_datetime(record.created_at),
        helpful_votes=record.helpful_votes,
    )


class DirectorySynchronizer:
    """
    Owner of the latest listing collection.

    Attributes:
        reader: The ledger read surface.
        bus: Where refresh outcomes are published.
        max_concurrency: Upper bound on concurrent hydration calls.
        recheck_attempts: Extra reads allowed when an expectation is unmet.
        recheck_delay: Seconds between those reads.
        featured_count: Number of leading listings flagged as featured.
    """

    def __init__(
        self,
        reader: ReadSurface,
        *,
        bus: DirectoryBus | None = None,
        max_concurrency: int = 8,
        recheck_attempts: int = 3,
        recheck_delay: float = 2.0,
        featured_count: int = 2,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if recheck_attempts < 0:
            raise ValueError("recheck_attempts cannot be negative")

        self.reader = reader
        self.bus = bus if bus is not None else DirectoryBus()
        self.max_concurrency = max_concurrency
        self.recheck_attempts = recheck_attempts
        self.recheck_delay = recheck_delay
        self.featured_count = featured_count
        self._sleep = sleep

        self._listing_hydrator = EntityHydrator(reader, CollectionKind.LISTINGS)
        self._review_hydrator = EntityHydrator(reader, CollectionKind.REVIEWS)

        self._snapshot = DirectorySnapshot()
        self._issued_generation = 0
        self._committed_generation = 0
        self._reviews: dict[str, tuple[Review, ...]] = {}
        self._review_generations: dict[str, int] = {}

    @classmethod
    def from_settings(
        cls, reader: ReadSurface, settings, *, bus: DirectoryBus | None = None
    ) -> DirectorySynchronizer:
        """Build from a ``config.sync`` section."""
        return cls(
            reader,
            bus=bus,
            max_concurrency=settings.max_concurrency,
            recheck_attempts=settings.recheck_attempts,
            recheck_delay=settings.recheck_delay,
            featured_count=settings.featured_count,
        )

    # -------------------------------------------------------------------------
    # Current state
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> DirectorySnapshot:
        """The last committed snapshot."""
        return self._snapshot

    @property
    def listings(self) -> tuple[Listing, ...]:
        return self._snapshot.listings

    def reviews_for(self, listing_id: str) -> tuple[Review, ...]:
        """Reviews from the last successful ``refresh_reviews(listing_id)``."""
        return self._reviews.get(listing_id, ())

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def begin_refresh(self) -> RefreshTicket:
        """Issue a ticket for a refresh the caller may later abandon."""
        self._issued_generation += 1
        return RefreshTicket(generation=self._issued_generation)

    async def refresh(
        self,
        *,
        expect: ListingExpectation | None = None,
        ticket: RefreshTicket | None = None,
    ) -> tuple[Listing, ...]:
        """
        Re-read the whole listing collection from the ledger.

        Args:
            expect: Optional predicate the fresh collection should satisfy;
                enables the bounded re-check.
            ticket: Ticket from :meth:`begin_refresh`; one is issued when
                omitted.

        Returns:
            tuple: The listings read, in directory order.

        Raises:
            DirectoryUnavailableError: If the identifiers could not be
                enumerated at all.
        """
        ticket = ticket or self.begin_refresh()

        try:
            listings = await self._read_listings()
        except DirectoryUnavailableError as e:
            logger.warning("Directory refresh failed: %s", e)
            committed = self._commit(
                ticket,
                DirectorySnapshot(
                    listings=(),
                    available=False,
                    generation=ticket.generation,
                    refreshed_at=datetime.now(UTC),
                ),
            )
            if committed:
                self.bus.emit(DIRECTORY_UNAVAILABLE, {"error": str(e)}, source="synchronizer")
            raise

        if expect is not None:
            listings = await self._recheck(listings, expect, ticket)

        snapshot = DirectorySnapshot(
            listings=listings,
            available=True,
            generation=ticket.generation,
            refreshed_at=datetime.now(UTC),
        )
        if self._commit(ticket, snapshot):
            logger.info("Directory refreshed: %d listings", len(listings))
            self.bus.emit(DIRECTORY_REFRESHED, {"snapshot": snapshot}, source="synchronizer")
        return listings

    async def _recheck(
        self,
        listings: tuple[Listing, ...],
        expect: ListingExpectation,
        ticket: RefreshTicket,
    ) -> tuple[Listing, ...]:
        attempt = 0
        while not expect(listings) and attempt < self.recheck_attempts:
            if ticket.abandoned:
                break
            attempt += 1
            logger.info(
                "Directory does not reflect the latest write yet; re-reading (%d/%d)",
                attempt,
                self.recheck_attempts,
            )
            await self._sleep(self.recheck_delay)
            try:
                listings = await self._read_listings()
            except DirectoryUnavailableError as e:
                logger.warning("Re-check read failed, keeping previous read: %s", e)
                break
        return listings

    def _commit(self, ticket: RefreshTicket, snapshot: DirectorySnapshot) -> bool:
        """Replace the snapshot unless the ticket is abandoned or outdated."""
        if ticket.abandoned:
            logger.debug("Refresh %d abandoned; result discarded", ticket.generation)
            return False
        if ticket.generation < self._committed_generation:
            logger.debug(
                "Refresh %d finished after refresh %d committed; result discarded",
                ticket.generation,
                self._committed_generation,
            )
            return False
        self._snapshot = snapshot
        self._committed_generation = ticket.generation
        return True

    async def _read_listings(self) -> tuple[Listing, ...]:
        identifiers = await self._enumerate(CollectionKind.LISTINGS)
        records = await self._hydrate_all(self._listing_hydrator, identifiers)

        # The hydrator already dropped inactive and blank-named records
        presentable = [r for r in records if isinstance(r, RawListingRecord)]
        return tuple(
            _to_listing(record, featured=index < self.featured_count)
            for index, record in enumerate(presentable)
        )

    # -------------------------------------------------------------------------
    # Reviews
    # -------------------------------------------------------------------------

    async def refresh_reviews(
        self, listing_id: str, *, ticket: RefreshTicket | None = None
    ) -> tuple[Review, ...]:
        """
        Re-read every review of one listing, newest first.

        Tickets work as for :meth:`refresh`, per listing: an abandoned read,
        or one that finishes after a newer read of the same listing has
        committed, leaves the cached reviews alone.

        Raises:
            DirectoryUnavailableError: If the review identifiers could not be
                enumerated.  Previously read reviews for the listing are
                discarded rather than served stale.
        """
        ticket = ticket or self.begin_refresh()

        try:
            identifiers = await self._enumerate(CollectionKind.REVIEWS, scope=listing_id)
        except DirectoryUnavailableError as e:
            logger.warning("Review refresh for listing %s failed: %s", listing_id, e)
            if self._commit_reviews(ticket, listing_id, None):
                self.bus.emit(
                    REVIEWS_UNAVAILABLE,
                    {"listing_id": listing_id, "error": str(e)},
                    source="synchronizer",
                )
            raise

        records = await self._hydrate_all(self._review_hydrator, identifiers)
        reviews = [
            _to_review(r)
            for r in records
            if isinstance(r, RawReviewRecord) and r.listing_identifier == listing_id
        ]
        reviews.sort(key=lambda r: (r.created_at, r.identifier), reverse=True)

        result = tuple(reviews)
        if self._commit_reviews(ticket, listing_id, result):
            self.bus.emit(
                REVIEWS_REFRESHED,
                {"listing_id": listing_id, "reviews": result},
                source="synchronizer",
            )
        return result

    def _commit_reviews(
        self, ticket: RefreshTicket, listing_id: str, reviews: tuple[Review, ...] | None
    ) -> bool:
        """Replace (or with None, drop) a listing's cached reviews."""
        if ticket.abandoned:
            logger.debug("Review refresh %d abandoned; result discarded", ticket.generation)
            return False
        if ticket.generation < self._review_generations.get(listing_id, 0):
            logger.debug(
                "Review refresh %d for listing %s is outdated; result discarded",
                ticket.generation,
                listing_id,
            )
            return False
        self._review_generations[listing_id] = ticket.generation
        if reviews is None:
            self._reviews.pop(listing_id, None)
        else:
            self._reviews[listing_id] = reviews
        return True

    # -------------------------------------------------------------------------
    # Shared read steps
    # -------------------------------------------------------------------------

    async def _enumerate(self, kind: CollectionKind, scope: str | None = None) -> list[str]:
        try:
            identifiers = await self.reader.enumerate(kind, scope)
        except (LedgerError, OSError) as e:
            raise DirectoryUnavailableError(f"Could not enumerate {kind.value}: {e}", e) from e
        # Keep first occurrence order if the ledger ever repeats an identifier
        return list(dict.fromkeys(identifiers))

    async def _hydrate_all(
        self, hydrator: EntityHydrator, identifiers: Iterable[str]
    ) -> list[RawRecord]:
        """Hydrate every identifier; the join waits for all outcomes."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def hydrate_one(identifier: str) -> RawRecord | None:
            async with semaphore:
                try:
                    return await hydrator.hydrate(identifier)
                except HydrationError as e:
                    logger.warning(
                        "Skipping %s record %s: %s", hydrator.kind.value, identifier, e.cause
                    )
                    self.bus.emit(
                        DIRECTORY_ITEM_SKIPPED,
                        {
                            "kind": hydrator.kind.value,
                            "identifier": identifier,
                            "error": str(e.cause),
                        },
                        source="synchronizer",
                    )
                    return None

        outcomes = await asyncio.gather(*(hydrate_one(i) for i in identifiers))
        return [record for record in outcomes if record is not None]
