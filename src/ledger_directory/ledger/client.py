"""
JSON-RPC client for the directory ledger.

This module provides an async client for the remote ledger node that stores
the directory.  It implements both call surfaces the core consumes
(:class:`~ledger_directory.ledger.surfaces.ReadSurface` and
:class:`~ledger_directory.ledger.surfaces.WriteSurface`).

The client is designed to be used as an async context manager to ensure
proper resource cleanup:

    async with LedgerRPCClient(config.ledger) as client:
        ids = await client.enumerate(CollectionKind.LISTINGS)
        detail = await client.fetch_detail(CollectionKind.LISTINGS, ids[0])

Wire format
-----------
Every call is a JSON-RPC 2.0 request POSTed to the configured endpoint.

Reads go through ``ledger_call``::

    {"method": "ledger_call",
     "params": {"contract": "0x...", "function": "getProject", "args": ["7"]}}

Writes go through ``ledger_submit`` (returns a submission reference) and
``ledger_awaitInclusion`` (returns ``{"status": "included"|"reverted",
"detail": ..., "blockNumber": ...}``).  Signing happens behind the endpoint,
in the wallet collaborator; no key material passes through this client.

Key Features:
    - Async HTTP requests using httpx
    - Typed exceptions separating ledger rejections from transport failures
    - Revert reasons extracted from structured or ABI-encoded error data
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from ledger_directory.config import LedgerSettings
from ledger_directory.ledger.records import normalize_identifier, parse_ledger_int
from ledger_directory.ledger.surfaces import CollectionKind, InclusionReceipt, SubmitCall

logger = logging.getLogger(__name__)

# Contract read functions per collection: (enumerate, fetch detail)
_READ_FUNCTIONS: dict[CollectionKind, tuple[str, str]] = {
    CollectionKind.LISTINGS: ("getAllProjects", "getProject"),
    CollectionKind.REVIEWS: ("getProjectReviews", "reviews"),
}

# Selector of the Solidity ``Error(string)`` revert payload
_ERROR_STRING_SELECTOR = "08c379a0"

_INCLUDED_STATUSES = {"included", "success", "0x1", "1"}
_REVERTED_STATUSES = {"reverted", "failed", "failure", "0x0", "0"}

# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


@dataclass
class LedgerError(Exception):
    """
    Exception raised when a ledger call fails.

    Attributes:
        message: Human-readable error message.
        code: JSON-RPC (or wallet) error code, when one was reported.
        reason: Revert or rejection reason extracted from the error payload.
        detail: Additional transport-level detail, if available.
        data: The raw error ``data`` member, for classification.

    Example:
        try:
            await client.submit(call)
        except LedgerError as e:
            print(f"Ledger error {e.code}: {e.reason or e.message}")
    """

    message: str
    code: int | None = None
    reason: str = ""
    detail: str = ""
    data: Any = field(default=None, repr=False)

    def __str__(self) -> str:
        """Return a formatted error message."""
        if self.reason:
            return f"{self.message}: {self.reason}"
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class LedgerRPCError(LedgerError):
    """
    The ledger endpoint answered with a JSON-RPC ``error`` object.

    This covers every rejection the remote side decides on: wallet prompts
    the user declined (code 4001), invalid parameters (-32602), reverted
    contract calls carrying a business-rule reason, and so on.
    """

    @classmethod
    def from_payload(cls, method: str, error: Any) -> LedgerRPCError:
        """Build from the ``error`` member of a JSON-RPC response."""
        if not isinstance(error, dict):
            return cls(message=f"{method} failed", detail=str(error), data=error)

        code = error.get("code")
        data = error.get("data")
        return cls(
            message=str(error.get("message") or f"{method} failed"),
            code=code if isinstance(code, int) else None,
            reason=extract_revert_reason(data),
            data=data,
        )


class LedgerUnavailableError(LedgerError):
    """
    The ledger endpoint could not be reached or did not answer usefully.

    This includes:
        - Connection failures and DNS errors
        - Timeouts (never distinguished from other transport failures)
        - Non-2xx HTTP statuses
        - Bodies that are not a JSON-RPC response
    """


# =============================================================================
# REVERT REASONS
# =============================================================================


def decode_error_string(payload: str) -> str:
    """
    Decode an ABI-encoded ``Error(string)`` revert payload.

    Returns:
        The revert message, or ``""`` if ``payload`` is not such a payload.
    """
    text = payload[2:] if payload.startswith("0x") else payload
    if not text.startswith(_ERROR_STRING_SELECTOR):
        return ""
    body = text[len(_ERROR_STRING_SELECTOR) :]
    try:
        # Layout: 32-byte offset, 32-byte length, then the UTF-8 bytes
        length = int(body[64:128], 16)
        raw = bytes.fromhex(body[128 : 128 + length * 2])
    except ValueError:
        return ""
    return raw.decode("utf-8", errors="replace")


def extract_revert_reason(data: Any) -> str:
    """Pull a human-readable rejection reason out of an error ``data`` member."""
    if data is None:
        return ""
    if isinstance(data, str):
        if data.startswith("0x"):
            return decode_error_string(data)
        return data
    if isinstance(data, dict):
        for key in ("reason", "message"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
        if isinstance(data.get("data"), str):
            return extract_revert_reason(data["data"])
    return ""


def _parse_block_number(value: Any) -> int | None:
    """Block number of a receipt; None when absent or unreadable."""
    if value is None:
        return None
    try:
        return parse_ledger_int(value)
    except ValueError:
        logger.warning("Ignoring unreadable block number %r", value)
        return None


# =============================================================================
# RPC CLIENT
# =============================================================================


@dataclass
class LedgerRPCClient:
    """
    Async JSON-RPC client for the directory contract.

    It must be used as an async context manager to manage the underlying
    HTTP connection pool.

    Attributes:
        settings: Ledger endpoint, contract identifier, timeout and
            confirmation depth.
    """

    settings: LedgerSettings

    _http_client: httpx.AsyncClient | None = field(default=None, repr=False)
    _request_id: int = field(default=0, repr=False)

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> LedgerRPCClient:
        """
        Create the underlying httpx.AsyncClient with the configured timeout.

        Raises:
            ValueError: If no endpoint or contract identifier is configured.
        """
        if not self.settings.rpc_url:
            raise ValueError("rpc_url cannot be empty")
        if not self.settings.contract_address:
            raise ValueError("contract_address cannot be empty")
        if self.settings.timeout <= 0:
            raise ValueError("timeout must be a positive number")

        self._http_client = httpx.AsyncClient(timeout=self.settings.timeout)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Close the underlying HTTP client connection pool."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """
        Get the HTTP client, ensuring it's been initialized.

        Raises:
            RuntimeError: If accessed outside of async context manager.
        """
        if self._http_client is None:
            raise RuntimeError(
                "LedgerRPCClient must be used as an async context manager. "
                "Use 'async with LedgerRPCClient(settings) as client:'"
            )
        return self._http_client

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _rpc(self, method: str, params: dict[str, Any]) -> Any:
        """
        Perform one JSON-RPC request and return its ``result`` member.

        Raises:
            LedgerUnavailableError: On any transport-level failure.
            LedgerRPCError: If the endpoint answered with an ``error`` object.
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        try:
            response = await self.http_client.post(self.settings.rpc_url, json=payload)
        except httpx.TimeoutException as e:
            raise LedgerUnavailableError(
                message=f"{method} timed out",
                detail=f"No answer from {self.settings.rpc_url} within "
                f"{self.settings.timeout}s",
            ) from e
        except httpx.HTTPError as e:
            raise LedgerUnavailableError(
                message=f"{method} failed",
                detail=f"Cannot connect to ledger at {self.settings.rpc_url}: {e}",
            ) from e

        if response.status_code != 200:
            raise LedgerUnavailableError(
                message=f"{method} failed",
                code=response.status_code,
                detail=f"Ledger endpoint returned HTTP {response.status_code}",
            )

        # Try to parse JSON response, handle non-JSON gracefully
        try:
            data = response.json()
        except ValueError as e:
            raise LedgerUnavailableError(
                message=f"{method} failed",
                detail="Ledger endpoint returned a non-JSON body",
            ) from e

        if not isinstance(data, dict):
            raise LedgerUnavailableError(
                message=f"{method} failed",
                detail="Ledger endpoint returned a malformed JSON-RPC response",
            )

        if data.get("error") is not None:
            raise LedgerRPCError.from_payload(method, data["error"])

        if "result" not in data:
            raise LedgerUnavailableError(
                message=f"{method} failed",
                detail="JSON-RPC response has neither result nor error",
            )

        return data["result"]

    async def _call(self, function: str, args: Sequence[Any] = ()) -> Any:
        """Invoke a read-only contract function."""
        return await self._rpc(
            "ledger_call",
            {
                "contract": self.settings.contract_address,
                "function": function,
                "args": list(args),
            },
        )

    # -------------------------------------------------------------------------
    # Read Surface
    # -------------------------------------------------------------------------

    async def enumerate(self, kind: CollectionKind, scope: str | None = None) -> list[str]:
        """
        List every identifier in a collection.

        Args:
            kind: Which collection to enumerate.
            scope: Listing identifier; required for the reviews collection.

        Returns:
            list: Identifiers in ledger order.  May be empty.

        Raises:
            ValueError: If reviews are enumerated without a scope.
            LedgerError: If the call fails.
        """
        function = _READ_FUNCTIONS[kind][0]
        if kind is CollectionKind.REVIEWS:
            if scope is None:
                raise ValueError("enumerating reviews requires a listing identifier")
            result = await self._call(function, [scope])
        else:
            result = await self._call(function)

        if result is None:
            return []
        if not isinstance(result, list):
            raise LedgerUnavailableError(
                message=f"{function} failed",
                detail=f"Expected a list of identifiers, got {type(result).__name__}",
            )
        identifiers = []
        for item in result:
            try:
                identifiers.append(normalize_identifier(item))
            except ValueError:
                logger.warning("Skipping unparseable %s identifier %r", kind.value, item)
        return identifiers

    async def fetch_detail(self, kind: CollectionKind, identifier: str) -> dict[str, Any] | None:
        """
        Fetch the raw detail record for one identifier.

        Listing details come back as ``{"project": {...}, "averageRating": n}``
        (or the equivalent two-element array); they are flattened into a
        single mapping with ``averageRating`` alongside the record fields.

        Returns:
            dict: The raw record, or None when the ledger holds nothing under
            ``identifier``.

        Raises:
            LedgerError: If the call fails.
        """
        function = _READ_FUNCTIONS[kind][1]
        result = await self._call(function, [identifier])
        if result is None:
            return None

        if kind is CollectionKind.LISTINGS:
            if isinstance(result, list) and len(result) == 2:
                project, average = result
            elif isinstance(result, dict) and "project" in result:
                project, average = result["project"], result.get("averageRating", 0)
            else:
                project, average = result, None
            if project is None:
                return None
            if not isinstance(project, dict):
                raise LedgerUnavailableError(
                    message=f"{function} failed",
                    detail=f"Unexpected listing record shape for {identifier}",
                )
            record = dict(project)
            if average is not None:
                record["averageRating"] = average
            return record

        if not isinstance(result, dict):
            raise LedgerUnavailableError(
                message=f"{function} failed",
                detail=f"Unexpected review record shape for {identifier}",
            )
        return dict(result)

    # -------------------------------------------------------------------------
    # Write Surface
    # -------------------------------------------------------------------------

    async def submit(self, call: SubmitCall) -> str:
        """
        Hand a contract write to the ledger for signing and inclusion.

        Returns:
            str: The submission reference (transaction hash).

        Raises:
            LedgerRPCError: If the wallet or the ledger rejected the call.
            LedgerUnavailableError: If the endpoint could not be reached.
        """
        result = await self._rpc(
            "ledger_submit",
            {
                "contract": self.settings.contract_address,
                "function": call.function,
                "args": list(call.args),
                "value": hex(call.value),
            },
        )
        if not isinstance(result, str) or not result:
            raise LedgerRPCError(
                message="ledger_submit failed",
                detail="Ledger accepted the call without a submission reference",
                data=result,
            )
        logger.info("Submitted %s as %s", call.function, result)
        return result

    async def await_inclusion(self, reference: str) -> InclusionReceipt:
        """
        Wait for the ledger to include or revert a submitted call.

        Returns:
            InclusionReceipt: ``included`` or ``reverted`` with optional detail.

        Raises:
            LedgerError: If the wait itself fails or the status is unknown.
        """
        result = await self._rpc(
            "ledger_awaitInclusion",
            {"reference": reference, "confirmations": self.settings.confirmations},
        )
        if not isinstance(result, dict):
            raise LedgerRPCError(
                message="ledger_awaitInclusion failed",
                detail="Malformed inclusion receipt",
                data=result,
            )

        status = str(result.get("status", "")).lower()
        if status in _INCLUDED_STATUSES:
            normalized = "included"
        elif status in _REVERTED_STATUSES:
            normalized = "reverted"
        else:
            raise LedgerRPCError(
                message="ledger_awaitInclusion failed",
                detail=f"Unknown inclusion status {status!r}",
                data=result,
            )

        return InclusionReceipt(
            reference=reference,
            status=normalized,
            detail=extract_revert_reason(result.get("detail")) or None,
            block_number=_parse_block_number(result.get("blockNumber")),
            raw=result,
        )
