"""Immutable view-model and outcome types for the directory core.

Listings and reviews here are the display-ready form of the ledger's raw
records: every numeric field has already passed through
:mod:`ledger_directory.directory.numeric`.  The raw fixed-point rating never
appears on a :class:`Listing`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ErrorKind(str, Enum):
    """Closed taxonomy of write and read failures."""

    VALIDATION_ERROR = "ValidationError"
    USER_CANCELLED = "UserCancelled"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    MALFORMED_ARGUMENTS = "MalformedArguments"
    DUPLICATE_SUBMISSION = "DuplicateSubmission"
    UNAUTHORIZED_SELF_ACTION = "UnauthorizedSelfAction"
    REMOTE_REJECTED = "RemoteRejected"
    UNAVAILABLE = "Unavailable"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ClassifiedFailure:
    """A failure mapped into the taxonomy, ready to show to a user.

    Attributes:
        kind: Taxonomy member.
        message: Human-readable message for ``kind``; never a stack trace.
        detail: The raw reason text the classification was based on.
    """

    kind: ErrorKind
    message: str
    detail: str = ""

    @property
    def idempotent(self) -> bool:
        """True when the ledger already holds the effect the write asked for."""
        return self.kind is ErrorKind.DUPLICATE_SUBMISSION


@dataclass(frozen=True)
class Listing:
    """One directory entry as presented to consumers.

    Attributes:
        identifier: Ledger-assigned id, never reused.
        name, description, category: Display strings fixed at creation.
        external_url: The application's URL.
        image_url: Logo/image URL, empty when none was supplied.
        owner_address: The submitting builder's address.
        rating: Average rating in stars, 0.0 to 5.0, one decimal.
        review_count: Number of reviews on the ledger.
        created_at: Ledger-assigned creation time (UTC).
        tags: Browse tags derived from the category.
        featured: True for the first listings in directory order.
    """

    identifier: str
    name: str
    description: str
    category: str
    external_url: str
    image_url: str
    owner_address: str
    rating: float
    review_count: int
    created_at: datetime
    tags: tuple[str, ...] = ()
    featured: bool = False


@dataclass(frozen=True)
class Review:
    """One rating and comment attached to a listing."""

    identifier: str
    listing_identifier: str
    author_address: str
    rating_stars: int
    comment: str
    created_at: datetime
    helpful_votes: int


@dataclass(frozen=True)
class DirectorySnapshot:
    """The latest committed listing collection.

    Snapshots are replaced whole; a consumer holding one never observes it
    change.

    Attributes:
        listings: Active listings in directory order.
        available: False when the last refresh could not reach the ledger.
            The listings are then empty: stale data is never served.
        generation: Refresh generation that produced the snapshot.
        refreshed_at: When the snapshot was committed, or None before the
            first refresh.
    """

    listings: tuple[Listing, ...] = ()
    available: bool = True
    generation: int = 0
    refreshed_at: datetime | None = field(default=None, compare=False)

    def find(self, identifier: str) -> Listing | None:
        """Return the listing with ``identifier``, if present."""
        for listing in self.listings:
            if listing.identifier == identifier:
                return listing
        return None
