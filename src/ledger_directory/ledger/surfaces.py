"""Call surfaces the directory core consumes from the remote ledger.

The core depends only on these two protocols.  :class:`LedgerRPCClient`
implements both over JSON-RPC; tests substitute in-memory fakes.

Read surface
------------
Idempotent, side-effect-free, unauthenticated:

- ``enumerate(kind, scope=None)``: every identifier known for a collection.
  ``scope`` narrows the reviews collection to a single listing.
- ``fetch_detail(kind, identifier)``: the raw detail mapping, or ``None``
  when the ledger holds nothing under that identifier.

Write surface
-------------
Signed by an external wallet collaborator; the core never sees key material:

- ``submit(call)``: hand a call to the ledger, returning an opaque
  submission reference once it has been accepted for inclusion.
- ``await_inclusion(reference)``: block until the ledger reports the
  submitted call as included or reverted.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Protocol


class CollectionKind(str, Enum):
    """Collections the read surface can enumerate and hydrate."""

    LISTINGS = "listings"
    REVIEWS = "reviews"


@dataclass(frozen=True)
class SubmitCall:
    """One contract write as handed to the write surface.

    Attributes:
        function: Contract function name, e.g. ``"submitReview"``.
        args: Positional arguments in contract order.
        value: Native value attached to the call, in wei.  ``0`` for
            fee-less calls.
    """

    function: str
    args: tuple[Any, ...] = ()
    value: int = 0


@dataclass(frozen=True)
class InclusionReceipt:
    """Outcome reported by the ledger for a submitted call.

    Attributes:
        reference: The submission reference the receipt belongs to.
        status: ``"included"`` or ``"reverted"``.
        detail: Optional failure detail (revert reason) from the ledger.
        block_number: Block that included the call, when reported.
    """

    reference: str
    status: Literal["included", "reverted"]
    detail: str | None = None
    block_number: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def included(self) -> bool:
        return self.status == "included"


class ReadSurface(Protocol):
    """Read-only access to the ledger's directory state."""

    async def enumerate(
        self, kind: CollectionKind, scope: str | None = None
    ) -> Sequence[str]: ...

    async def fetch_detail(
        self, kind: CollectionKind, identifier: str
    ) -> dict[str, Any] | None: ...


class WriteSurface(Protocol):
    """Signed write access to the ledger."""

    async def submit(self, call: SubmitCall) -> str: ...

    async def await_inclusion(self, reference: str) -> InclusionReceipt: ...
