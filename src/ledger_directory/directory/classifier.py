"""
Failure classification for ledger writes.

Write failures reach the core in many shapes: wallet errors with numeric
codes, JSON-RPC error objects, revert reasons inside ABI payloads, reverted
inclusion receipts, and plain transport exceptions.  This module maps all of
them onto the closed :class:`ErrorKind` taxonomy with one ordered rule list,
so no call site ever inspects error strings itself.

Rule order (first match wins)::

    UserCancelled > InsufficientFunds > MalformedArguments
      > DuplicateSubmission > UnauthorizedSelfAction > known RemoteRejected
      > generic RemoteRejected > Unavailable > Unknown

Matching is case-insensitive substring inspection of every message, reason
and detail reachable from the raw failure, plus its error codes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from ledger_directory.directory.types import ClassifiedFailure, ErrorKind
from ledger_directory.ledger.client import LedgerError, LedgerRPCError, LedgerUnavailableError
from ledger_directory.ledger.surfaces import InclusionReceipt

logger = logging.getLogger(__name__)

# Wallet / JSON-RPC codes
CODE_USER_REJECTED = 4001
CODE_INVALID_PARAMS = -32602

_CANCEL_PHRASES = (
    "user rejected",
    "user denied",
    "rejected by user",
    "cancelled by user",
    "canceled by user",
    "user cancelled",
    "user canceled",
)
_FUNDS_PHRASES = ("insufficient funds", "insufficient balance")
_MALFORMED_PHRASES = ("invalid params", "invalid parameters", "invalid argument")
_DUPLICATE_PHRASES = ("already reviewed", "already voted", "already submitted")
_SELF_ACTION_PHRASES = ("cannot review own", "own project", "cannot vote on own")
_COMMENT_PHRASES = ("comment too short",)
_REVERT_PHRASES = ("revert",)

MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION_ERROR: "Please check the form and try again.",
    ErrorKind.USER_CANCELLED: "Transaction cancelled by user.",
    ErrorKind.INSUFFICIENT_FUNDS: "Insufficient balance for the transaction and gas fees.",
    ErrorKind.MALFORMED_ARGUMENTS: "Invalid parameters. Check your input data.",
    ErrorKind.DUPLICATE_SUBMISSION: "This action has already been recorded on the ledger.",
    ErrorKind.UNAUTHORIZED_SELF_ACTION: "You cannot review your own project.",
    ErrorKind.REMOTE_REJECTED: "The ledger rejected the transaction.",
    ErrorKind.UNAVAILABLE: "The ledger could not be reached. Please try again.",
    ErrorKind.UNKNOWN: "Submission failed. Please try again.",
}


@dataclass
class _Signals:
    """Everything inspectable about one raw failure."""

    codes: set[int | str] = field(default_factory=set)
    texts: list[str] = field(default_factory=list)
    reason: str = ""
    reverted: bool = False
    rpc_rejection: bool = False
    transport: bool = False

    @property
    def haystack(self) -> str:
        return " | ".join(self.texts).lower()

    def mentions(self, phrases: tuple[str, ...]) -> bool:
        haystack = self.haystack
        return any(phrase in haystack for phrase in phrases)

    def add_text(self, value: Any) -> None:
        if isinstance(value, str) and value:
            self.texts.append(value)

    def add_reason(self, value: Any) -> None:
        if isinstance(value, str) and value:
            self.texts.append(value)
            if not self.reason:
                self.reason = value

    def add_code(self, value: Any) -> None:
        if isinstance(value, bool) or value is None:
            return
        if isinstance(value, (int, str)) and value != "":
            self.codes.add(value.upper() if isinstance(value, str) else value)


def _collect(raw: Any, signals: _Signals, depth: int = 0) -> None:
    """Walk ``raw`` and its nested causes, recording codes and texts."""
    if raw is None or depth > 6:
        return

    if isinstance(raw, str):
        signals.add_text(raw)
        return

    if isinstance(raw, InclusionReceipt):
        if not raw.included:
            signals.reverted = True
        signals.add_reason(raw.detail)
        return

    if isinstance(raw, Mapping):
        signals.add_code(raw.get("code"))
        signals.add_reason(raw.get("reason"))
        signals.add_text(raw.get("message"))
        signals.add_text(raw.get("detail"))
        for key in ("data", "error", "info"):
            _collect(raw.get(key), signals, depth + 1)
        return

    if isinstance(raw, BaseException):
        if isinstance(raw, LedgerError):
            signals.add_code(raw.code)
            signals.add_reason(raw.reason)
            signals.add_text(raw.message)
            signals.add_text(raw.detail)
            _collect(raw.data, signals, depth + 1)
            if isinstance(raw, LedgerRPCError):
                signals.rpc_rejection = True
            if isinstance(raw, LedgerUnavailableError):
                signals.transport = True
        else:
            signals.add_code(getattr(raw, "code", None))
            signals.add_reason(getattr(raw, "reason", None))
            signals.add_text(str(raw))
            if isinstance(raw, (httpx.TransportError, OSError)):
                signals.transport = True
            if getattr(raw, "kind", None) is ErrorKind.UNAVAILABLE:
                signals.transport = True
        _collect(raw.__cause__, signals, depth + 1)
        return

    signals.add_text(str(raw))


def _signals_for(raw: Any) -> _Signals:
    signals = _Signals()
    _collect(raw, signals)
    return signals


# Ordered rules: (kind, predicate).  First match wins.
_RULES: list[tuple[ErrorKind, Callable[[_Signals], bool]]] = [
    (
        ErrorKind.USER_CANCELLED,
        lambda s: CODE_USER_REJECTED in s.codes
        or "ACTION_REJECTED" in s.codes
        or s.mentions(_CANCEL_PHRASES),
    ),
    (
        ErrorKind.INSUFFICIENT_FUNDS,
        lambda s: "INSUFFICIENT_FUNDS" in s.codes or s.mentions(_FUNDS_PHRASES),
    ),
    (
        ErrorKind.MALFORMED_ARGUMENTS,
        lambda s: CODE_INVALID_PARAMS in s.codes
        or "INVALID_ARGUMENT" in s.codes
        or s.mentions(_MALFORMED_PHRASES),
    ),
    (ErrorKind.DUPLICATE_SUBMISSION, lambda s: s.mentions(_DUPLICATE_PHRASES)),
    (ErrorKind.UNAUTHORIZED_SELF_ACTION, lambda s: s.mentions(_SELF_ACTION_PHRASES)),
    (ErrorKind.REMOTE_REJECTED, lambda s: s.mentions(_COMMENT_PHRASES)),
    (
        ErrorKind.REMOTE_REJECTED,
        lambda s: s.reverted or s.rpc_rejection or s.mentions(_REVERT_PHRASES),
    ),
    (ErrorKind.UNAVAILABLE, lambda s: s.transport),
]


def classify(raw: Any) -> ErrorKind:
    """
    Map a raw failure to its taxonomy member.

    Args:
        raw: An exception, a JSON-RPC error mapping, a reason string or an
            :class:`InclusionReceipt`.

    Returns:
        ErrorKind: Never ``VALIDATION_ERROR``, which only local checks produce.
    """
    signals = _signals_for(raw)
    for kind, matches in _RULES:
        if matches(signals):
            return kind
    return ErrorKind.UNKNOWN


def describe(kind: ErrorKind, raw: Any = None) -> str:
    """User-facing message for ``kind``, specialised by the raw reason."""
    signals = _signals_for(raw)

    if kind is ErrorKind.DUPLICATE_SUBMISSION:
        if signals.mentions(("already voted",)):
            return "You have already voted on this review."
        if signals.mentions(("already reviewed",)):
            return "You have already reviewed this project."
    elif kind is ErrorKind.REMOTE_REJECTED:
        if signals.mentions(_COMMENT_PHRASES):
            return "Review comment is too short for the ledger's minimum length."
        if signals.reason:
            return f"The ledger rejected the transaction: {signals.reason}"
    elif kind is ErrorKind.VALIDATION_ERROR and isinstance(raw, str) and raw:
        return raw

    return MESSAGES[kind]


def classify_failure(raw: Any) -> ClassifiedFailure:
    """Classify ``raw`` and attach its user-facing message."""
    kind = classify(raw)
    signals = _signals_for(raw)
    failure = ClassifiedFailure(
        kind=kind,
        message=describe(kind, raw),
        detail=signals.reason or (signals.texts[0] if signals.texts else ""),
    )
    logger.debug("Classified failure as %s: %s", kind.value, failure.detail)
    return failure
