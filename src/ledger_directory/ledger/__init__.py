"""Ledger package: the remote store of record and how the core reaches it.

Public surface
--------------
- :class:`LedgerRPCClient`        httpx JSON-RPC client implementing both surfaces.
- :class:`ReadSurface`            protocol for ``enumerate`` / ``fetch_detail``.
- :class:`WriteSurface`           protocol for ``submit`` / ``await_inclusion``.
- :class:`SubmitCall`             one contract write.
- :class:`InclusionReceipt`       included/reverted outcome of a submitted write.
- :exc:`LedgerError`              base of all ledger call failures.
- :exc:`LedgerRPCError`          : the remote side rejected the call.
- :exc:`LedgerUnavailableError`  : the remote side could not be reached.

Usage example
-------------
::

    from ledger_directory.config import config
    from ledger_directory.ledger import CollectionKind, LedgerRPCClient

    async with LedgerRPCClient(config.ledger) as client:
        ids = await client.enumerate(CollectionKind.LISTINGS)
"""

from ledger_directory.ledger.client import (
    LedgerError,
    LedgerRPCClient,
    LedgerRPCError,
    LedgerUnavailableError,
)
from ledger_directory.ledger.records import RawListingRecord, RawReviewRecord
from ledger_directory.ledger.surfaces import (
    CollectionKind,
    InclusionReceipt,
    ReadSurface,
    SubmitCall,
    WriteSurface,
)

__all__ = [
    "CollectionKind",
    "InclusionReceipt",
    "LedgerError",
    "LedgerRPCClient",
    "LedgerRPCError",
    "LedgerUnavailableError",
    "RawListingRecord",
    "RawReviewRecord",
    "ReadSurface",
    "SubmitCall",
    "WriteSurface",
]
