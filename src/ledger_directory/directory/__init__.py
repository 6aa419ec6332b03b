"""Directory core: the local view of the ledger and the write lifecycle.

Public surface
--------------
- :class:`DirectorySynchronizer`   keeps the listing collection in step with the ledger.
- :class:`EntityHydrator`          fetches one identifier's record.
- :class:`TransactionCoordinator`  drives one write to Settled or Failed.
- :func:`classify_failure`         maps any write failure onto :class:`ErrorKind`.
- :func:`to_display_rating`        fixed-point rating to display stars.

Usage example
-------------
::

    from ledger_directory.config import config
    from ledger_directory.directory import DirectorySynchronizer
    from ledger_directory.ledger import LedgerRPCClient

    async with LedgerRPCClient(config.ledger) as client:
        sync = DirectorySynchronizer.from_settings(client, config.sync)
        listings = await sync.refresh()
"""

from ledger_directory.directory.classifier import classify, classify_failure, describe
from ledger_directory.directory.hydrator import EntityHydrator, HydrationError
from ledger_directory.directory.numeric import to_display_rating
from ledger_directory.directory.synchronizer import (
    CATEGORY_TAGS,
    DirectorySynchronizer,
    DirectoryUnavailableError,
    RefreshTicket,
)
from ledger_directory.directory.transactions import (
    HelpfulVote,
    ListingSubmission,
    Phase,
    ReviewSubmission,
    TransactionCoordinator,
    TransactionHandle,
    TransactionInProgressError,
    TransactionKind,
)
from ledger_directory.directory.types import (
    ClassifiedFailure,
    DirectorySnapshot,
    ErrorKind,
    Listing,
    Review,
)

__all__ = [
    "CATEGORY_TAGS",
    "ClassifiedFailure",
    "DirectorySnapshot",
    "DirectorySynchronizer",
    "DirectoryUnavailableError",
    "EntityHydrator",
    "ErrorKind",
    "HelpfulVote",
    "HydrationError",
    "Listing",
    "ListingSubmission",
    "Phase",
    "RefreshTicket",
    "Review",
    "ReviewSubmission",
    "TransactionCoordinator",
    "TransactionHandle",
    "TransactionInProgressError",
    "TransactionKind",
    "classify",
    "classify_failure",
    "describe",
    "to_display_rating",
]
