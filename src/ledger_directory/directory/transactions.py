"""
Write transaction lifecycle.

A :class:`TransactionCoordinator` drives exactly one ledger write through an
explicit state machine::

    IDLE ──submit()──> SUBMITTING ──reference──> AWAITING_INCLUSION ──included──> SETTLED
                           │                             │
                           └──────── FAILED <────────────┘
                     (local validation, rejection at submit, revert or
                      inclusion error)

- Local validation runs inside SUBMITTING before any outbound call.  A
  failing check ends in ``FAILED(ValidationError)`` and the write surface is
  never contacted.
- Every remote failure is classified (see
  :mod:`ledger_directory.directory.classifier`) and recorded on the handle.
  The coordinator never retries a write: a retry is a new coordinator and an
  explicit new ``submit()``.
- Reaching SETTLED triggers exactly one synchronizer refresh, however many
  times the settlement is observed.
- FAILED triggers no refresh.
- :meth:`TransactionCoordinator.abandon` stops tracking a pending write.
  Calls already sent are not cancelled; their results are ignored.

A coordinator is not re-entrant.  Call :meth:`TransactionCoordinator.reset`
(or discard it) once the handle is terminal or abandoned before starting another
write.
Writes of different kinds use independent coordinators and are not
serialised against each other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from urllib.parse import urlparse

from ledger_directory.config import DEFAULT_LISTING_FEE_WEI
from ledger_directory.core.bus import (
    TRANSACTION_ABANDONED,
    TRANSACTION_FAILED,
    TRANSACTION_PHASE_CHANGED,
    TRANSACTION_SETTLED,
    DirectoryBus,
)
from ledger_directory.directory.classifier import classify_failure
from ledger_directory.directory.synchronizer import (
    CATEGORY_TAGS,
    DirectorySynchronizer,
    DirectoryUnavailableError,
    ListingExpectation,
)
from ledger_directory.directory.types import ClassifiedFailure, DirectorySnapshot, ErrorKind
from ledger_directory.ledger.surfaces import InclusionReceipt, SubmitCall, WriteSurface

logger = logging.getLogger(__name__)

COMMENT_MAX_LENGTH = 200


# =============================================================================
# KINDS, PHASES AND ARGUMENTS
# =============================================================================


class TransactionKind(str, Enum):
    SUBMIT_LISTING = "SubmitListing"
    SUBMIT_REVIEW = "SubmitReview"
    VOTE_HELPFUL = "VoteHelpful"


class Phase(str, Enum):
    IDLE = "Idle"
    SUBMITTING = "Submitting"
    AWAITING_INCLUSION = "AwaitingInclusion"
    SETTLED = "Settled"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self in (Phase.SETTLED, Phase.FAILED)


@dataclass(frozen=True)
class ListingSubmission:
    """Arguments of ``submitProject``; the submission fee is attached separately."""

    name: str
    description: str
    category: str
    external_url: str
    builder_name: str
    image_url: str = ""
    builder_bio: str = ""
    social_handle: str = ""

    def to_call(self, fee_wei: int) -> SubmitCall:
        return SubmitCall(
            function="submitProject",
            args=(
                self.name,
                self.description,
                self.category,
                self.external_url,
                self.image_url,
                self.builder_name,
                self.builder_bio,
                self.social_handle,
            ),
            value=fee_wei,
        )


@dataclass(frozen=True)
class ReviewSubmission:
    """Arguments of ``submitReview``."""

    listing_id: str
    rating: int
    comment: str

    def to_call(self) -> SubmitCall:
        return SubmitCall(
            function="submitReview", args=(self.listing_id, self.rating, self.comment)
        )


@dataclass(frozen=True)
class HelpfulVote:
    """Arguments of ``voteHelpful``."""

    review_id: str

    def to_call(self) -> SubmitCall:
        return SubmitCall(function="voteHelpful", args=(self.review_id,))


TransactionArgs = ListingSubmission | ReviewSubmission | HelpfulVote

_ARGUMENT_TYPES: dict[TransactionKind, type] = {
    TransactionKind.SUBMIT_LISTING: ListingSubmission,
    TransactionKind.SUBMIT_REVIEW: ReviewSubmission,
    TransactionKind.VOTE_HELPFUL: HelpfulVote,
}


@dataclass
class TransactionHandle:
    """
    Local representation of one write.

    Attributes:
        kind: What the write does.
        args: The arguments it was submitted with.
        phase: Current lifecycle phase.
        submission_reference: Assigned once the ledger accepts the call for
            inclusion; None before that.
        failure: Set only in the FAILED phase.
        receipt: The inclusion receipt, once observed.
        phases: Every phase the handle has been in, in order.
        abandoned: Set by :meth:`TransactionCoordinator.abandon`; later
            results of calls already sent no longer change the handle.
    """

    kind: TransactionKind
    args: TransactionArgs
    phase: Phase = Phase.IDLE
    submission_reference: str | None = None
    failure: ClassifiedFailure | None = None
    receipt: InclusionReceipt | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    phases: list[Phase] = field(default_factory=lambda: [Phase.IDLE])
    abandoned: bool = False

    @property
    def terminal(self) -> bool:
        return self.phase.terminal

    @property
    def succeeded(self) -> bool:
        return self.phase is Phase.SETTLED


class TransactionInProgressError(RuntimeError):
    """A coordinator was asked to start a second write."""


# =============================================================================
# LOCAL VALIDATION
# =============================================================================


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_listing(args: ListingSubmission) -> list[str]:
    """Return the problems with a listing submission (empty when valid)."""
    problems = []
    if not args.name.strip():
        problems.append("Project name is required.")
    if not args.description.strip():
        problems.append("Description is required.")
    if args.category not in CATEGORY_TAGS:
        problems.append(f"Category must be one of: {', '.join(CATEGORY_TAGS)}.")
    if not _is_http_url(args.external_url):
        problems.append("Project URL must be an http(s) URL.")
    if args.image_url.strip() and not _is_http_url(args.image_url):
        problems.append("Image URL must be an http(s) URL.")
    if not args.builder_name.strip():
        problems.append("Builder name is required.")
    return problems


def validate_review(
    args: ReviewSubmission,
    *,
    comment_min_length: int,
    comment_max_length: int = COMMENT_MAX_LENGTH,
) -> list[str]:
    """Return the problems with a review submission (empty when valid)."""
    problems = []
    if not str(args.listing_id).strip():
        problems.append("A project must be selected.")
    rating = args.rating
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        problems.append("Please select a rating between 1 and 5.")
    if len(args.comment.strip()) < comment_min_length:
        problems.append(f"Please write at least {comment_min_length} characters.")
    if len(args.comment) > comment_max_length:
        problems.append(f"Review comment cannot exceed {comment_max_length} characters.")
    return problems


def validate_vote(args: HelpfulVote) -> list[str]:
    """Return the problems with a helpful vote (empty when valid)."""
    if not str(args.review_id).strip():
        return ["A review must be selected."]
    return []


# =============================================================================
# COORDINATOR
# =============================================================================


class TransactionCoordinator:
    """
    Drive one write through submit, await-inclusion and settle/fail.

    Attributes:
        writer: The ledger write surface.
        synchronizer: Refreshed once when the write settles.
        bus: Where phase changes and failures are published.
        comment_min_length: Local mirror of the ledger's comment minimum.
        listing_fee_wei: Value attached to listing submissions.
    """

    def __init__(
        self,
        writer: WriteSurface,
        synchronizer: DirectorySynchronizer,
        *,
        bus: DirectoryBus | None = None,
        comment_min_length: int = 10,
        listing_fee_wei: int = DEFAULT_LISTING_FEE_WEI,
    ) -> None:
        self.writer = writer
        self.synchronizer = synchronizer
        self.bus = bus if bus is not None else synchronizer.bus
        self.comment_min_length = comment_min_length
        self.listing_fee_wei = listing_fee_wei

        self._handle: TransactionHandle | None = None
        self._baseline: DirectorySnapshot | None = None
        self._refresh_triggered = False

    @classmethod
    def from_settings(
        cls,
        writer: WriteSurface,
        synchronizer: DirectorySynchronizer,
        settings,
        *,
        bus: DirectoryBus | None = None,
    ) -> TransactionCoordinator:
        """Build from a ``config.transactions`` section."""
        return cls(
            writer,
            synchronizer,
            bus=bus,
            comment_min_length=settings.comment_min_length,
            listing_fee_wei=settings.listing_fee_wei,
        )

    @property
    def handle(self) -> TransactionHandle | None:
        return self._handle

    @property
    def busy(self) -> bool:
        """True while a write is in flight; UIs disable re-submission on it."""
        handle = self._handle
        return handle is not None and not handle.terminal and not handle.abandoned

    def abandon(self) -> TransactionHandle | None:
        """
        Stop tracking the current write.

        Calls already sent to the ledger are not cancelled and the ledger may
        still include the write.  Their results no longer update the handle
        or trigger a refresh, and the coordinator can be :meth:`reset` at once.
        Keep awaiting a running :meth:`submit` rather than cancelling it.

        Returns:
            The abandoned handle, or None when there is no write.
        """
        handle = self._handle
        if handle is None or handle.terminal or handle.abandoned:
            return handle
        handle.abandoned = True
        logger.info("%s write abandoned in %s", handle.kind.value, handle.phase.value)
        self.bus.emit(TRANSACTION_ABANDONED, {"handle": handle}, source="transactions")
        return handle

    def reset(self) -> None:
        """Forget a terminal or abandoned handle so the coordinator can run another write.

        Raises:
            TransactionInProgressError: If the current write is still tracked.
        """
        if self.busy:
            raise TransactionInProgressError("Cannot reset while a write is in flight")
        self._handle = None
        self._baseline = None
        self._refresh_triggered = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def submit(self, kind: TransactionKind, args: TransactionArgs) -> TransactionHandle:
        """
        Run one write to a terminal phase.

        Remote failures never raise; they end in FAILED with a classified
        reason on ``handle.failure``.

        Returns:
            TransactionHandle: In SETTLED or FAILED.

        Raises:
            TransactionInProgressError: If this coordinator already holds a
                handle (call :meth:`reset` first).
            TypeError: If ``args`` does not match ``kind``.
        """
        if self._handle is not None:
            raise TransactionInProgressError(
                f"Coordinator already holds a {self._handle.kind.value} write "
                f"in phase {self._handle.phase.value}"
            )
        expected = _ARGUMENT_TYPES[kind]
        if not isinstance(args, expected):
            raise TypeError(f"{kind.value} expects {expected.__name__}, got {type(args).__name__}")

        handle = TransactionHandle(kind=kind, args=args)
        self._handle = handle
        self._baseline = self.synchronizer.snapshot
        self._transition(handle, Phase.SUBMITTING)

        problems = self.validate(kind, args)
        if problems:
            self._fail(
                handle,
                ClassifiedFailure(
                    kind=ErrorKind.VALIDATION_ERROR,
                    message=problems[0],
                    detail="; ".join(problems),
                ),
            )
            return handle

        call = self._build_call(args)
        try:
            reference = await self.writer.submit(call)
        except Exception as e:
            self._fail(handle, classify_failure(e))
            return handle
        if handle.abandoned:
            return handle

        handle.submission_reference = reference
        self._transition(handle, Phase.AWAITING_INCLUSION)

        try:
            receipt = await self.writer.await_inclusion(reference)
        except Exception as e:
            self._fail(handle, classify_failure(e))
            return handle
        if handle.abandoned or handle.terminal:
            # Abandoned, or settled by an earlier observe_inclusion()
            return handle

        return await self.observe_inclusion(receipt)

    async def observe_inclusion(self, receipt: InclusionReceipt) -> TransactionHandle:
        """
        Apply an inclusion receipt to the current write.

        Safe to call again for a settlement already observed (for example
        when a ledger event and the awaited receipt both arrive): only the
        first observation settles and refreshes.

        Raises:
            RuntimeError: If no write is awaiting inclusion.
            ValueError: If the receipt belongs to another submission.
        """
        handle = self._handle
        if handle is None:
            raise RuntimeError("No write to apply the receipt to")
        if handle.abandoned:
            logger.debug("Ignoring inclusion receipt for abandoned write %s", receipt.reference)
            return handle
        if handle.terminal:
            logger.debug(
                "Ignoring repeated inclusion receipt for %s (%s)",
                handle.submission_reference,
                handle.phase.value,
            )
            return handle
        if handle.phase is not Phase.AWAITING_INCLUSION:
            raise RuntimeError(f"Write is {handle.phase.value}, not awaiting inclusion")
        if receipt.reference != handle.submission_reference:
            raise ValueError(
                f"Receipt for {receipt.reference} does not match {handle.submission_reference}"
            )

        handle.receipt = receipt
        if not receipt.included:
            self._fail(handle, classify_failure(receipt))
            return handle

        self._transition(handle, Phase.SETTLED)
        self.bus.emit(TRANSACTION_SETTLED, {"handle": handle}, source="transactions")
        await self._refresh_after_settlement(handle)
        return handle

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def validate(self, kind: TransactionKind, args: TransactionArgs) -> list[str]:
        """Local precondition checks; no outbound calls."""
        if kind is TransactionKind.SUBMIT_LISTING:
            return validate_listing(args)  # type: ignore[arg-type]
        if kind is TransactionKind.SUBMIT_REVIEW:
            return validate_review(
                args, comment_min_length=self.comment_min_length  # type: ignore[arg-type]
            )
        return validate_vote(args)  # type: ignore[arg-type]

    def _build_call(self, args: TransactionArgs) -> SubmitCall:
        if isinstance(args, ListingSubmission):
            return args.to_call(self.listing_fee_wei)
        return args.to_call()

    def _transition(self, handle: TransactionHandle, phase: Phase) -> None:
        if handle.terminal or handle.abandoned:
            logger.debug(
                "Ignoring %s for %s write in %s", phase.value, handle.kind.value, handle.phase.value
            )
            return
        logger.info("%s write: %s -> %s", handle.kind.value, handle.phase.value, phase.value)
        handle.phase = phase
        handle.phases.append(phase)
        self.bus.emit(TRANSACTION_PHASE_CHANGED, {"handle": handle}, source="transactions")

    def _fail(self, handle: TransactionHandle, failure: ClassifiedFailure) -> None:
        if handle.terminal or handle.abandoned:
            logger.debug(
                "Ignoring late %s failure of %s write in %s",
                failure.kind.value,
                handle.kind.value,
                handle.phase.value,
            )
            return
        handle.failure = failure
        self._transition(handle, Phase.FAILED)
        logger.warning(
            "%s write failed (%s): %s",
            handle.kind.value,
            failure.kind.value,
            failure.detail or failure.message,
        )
        self.bus.emit(
            TRANSACTION_FAILED,
            {"handle": handle, "kind": failure.kind, "message": failure.message},
            source="transactions",
        )

    def _expectation(self, handle: TransactionHandle) -> ListingExpectation | None:
        """What the directory should show once the settled write is readable."""
        baseline = self._baseline or DirectorySnapshot()
        args = handle.args

        if isinstance(args, ListingSubmission):
            before = sum(1 for listing in baseline.listings if listing.name == args.name)
            return lambda listings: sum(1 for item in listings if item.name == args.name) > before

        if isinstance(args, ReviewSubmission):
            prior = baseline.find(args.listing_id)
            before = prior.review_count if prior is not None else 0

            def review_counted(listings) -> bool:
                for listing in listings:
                    if listing.identifier == args.listing_id:
                        return listing.review_count > before
                return False

            return review_counted

        # Helpful votes do not show in the listing collection
        return None

    async def _refresh_after_settlement(self, handle: TransactionHandle) -> None:
        if self._refresh_triggered:
            return
        self._refresh_triggered = True
        try:
            await self.synchronizer.refresh(expect=self._expectation(handle))
        except DirectoryUnavailableError as e:
            # The write is settled on the ledger; only the local view is behind
            logger.warning("Refresh after settling %s failed: %s", handle.submission_reference, e)
        except Exception:
            logger.exception("Refresh after settling %s failed", handle.submission_reference)
