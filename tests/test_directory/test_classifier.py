"""
Tests for write failure classification.

Every raw failure shape the write surface can produce must land on exactly
one ErrorKind, with the documented priority when several signals are
present.
"""

import httpx
import pytest

from ledger_directory.directory.classifier import (
    MESSAGES,
    classify,
    classify_failure,
    describe,
)
from ledger_directory.directory.synchronizer import DirectoryUnavailableError
from ledger_directory.directory.types import ErrorKind
from ledger_directory.ledger.client import LedgerRPCError, LedgerUnavailableError
from ledger_directory.ledger.surfaces import InclusionReceipt


def abi_error_string(message: str) -> str:
    """ABI-encode ``Error(string)`` the way a reverting contract does."""
    data = message.encode()
    padded = data.hex().ljust(((len(data) + 31) // 32) * 64, "0")
    return "0x08c379a0" + f"{32:064x}" + f"{len(data):064x}" + padded


# =============================================================================
# TAXONOMY
# =============================================================================


@pytest.mark.unit
class TestClassify:
    """One raw failure, one kind."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ({"code": 4001, "message": "User rejected the request."}, ErrorKind.USER_CANCELLED),
            (
                LedgerRPCError(message="User denied transaction signature", code=4001),
                ErrorKind.USER_CANCELLED,
            ),
            ({"code": "ACTION_REJECTED"}, ErrorKind.USER_CANCELLED),
            (
                LedgerRPCError(message="insufficient funds for gas * price + value"),
                ErrorKind.INSUFFICIENT_FUNDS,
            ),
            (
                LedgerRPCError(message="Invalid params", code=-32602),
                ErrorKind.MALFORMED_ARGUMENTS,
            ),
            ("execution reverted: Already reviewed", ErrorKind.DUPLICATE_SUBMISSION),
            (
                LedgerRPCError(message="execution reverted", reason="Already voted"),
                ErrorKind.DUPLICATE_SUBMISSION,
            ),
            ("Cannot review own project", ErrorKind.UNAUTHORIZED_SELF_ACTION),
            ("execution reverted: Comment too short", ErrorKind.REMOTE_REJECTED),
            (
                LedgerRPCError(message="execution reverted", reason="Project not active"),
                ErrorKind.REMOTE_REJECTED,
            ),
            (InclusionReceipt(reference="0x1", status="reverted"), ErrorKind.REMOTE_REJECTED),
            (
                LedgerUnavailableError(message="ledger_submit timed out"),
                ErrorKind.UNAVAILABLE,
            ),
            (httpx.ConnectError("connection refused"), ErrorKind.UNAVAILABLE),
            (ConnectionResetError("reset by peer"), ErrorKind.UNAVAILABLE),
            (DirectoryUnavailableError("could not enumerate"), ErrorKind.UNAVAILABLE),
            (ValueError("something odd"), ErrorKind.UNKNOWN),
            (None, ErrorKind.UNKNOWN),
        ],
    )
    def test_classifies(self, raw, expected):
        assert classify(raw) is expected

    def test_cancellation_outranks_everything(self):
        raw = LedgerRPCError(
            message="User rejected the request", code=4001, reason="insufficient funds"
        )
        assert classify(raw) is ErrorKind.USER_CANCELLED

    def test_funds_outrank_duplicate(self):
        assert classify("insufficient funds; Already reviewed") is ErrorKind.INSUFFICIENT_FUNDS

    def test_duplicate_outranks_generic_revert(self):
        receipt = InclusionReceipt(reference="0x1", status="reverted", detail="Already reviewed")
        assert classify(receipt) is ErrorKind.DUPLICATE_SUBMISSION

    def test_matching_is_case_insensitive(self):
        assert classify("ALREADY VOTED") is ErrorKind.DUPLICATE_SUBMISSION

    def test_abi_encoded_reason_is_decoded(self):
        error = LedgerRPCError.from_payload(
            "ledger_submit",
            {
                "code": 3,
                "message": "execution reverted",
                "data": abi_error_string("Already reviewed"),
            },
        )

        assert error.reason == "Already reviewed"
        assert classify(error) is ErrorKind.DUPLICATE_SUBMISSION

    def test_wrapped_cause_is_inspected(self):
        wrapper = RuntimeError("submission failed")
        wrapper.__cause__ = LedgerUnavailableError(message="ledger_submit failed")

        assert classify(wrapper) is ErrorKind.UNAVAILABLE

    def test_nested_error_mapping_is_inspected(self):
        raw = {"message": "Internal JSON-RPC error.", "data": {"message": "Already voted"}}
        assert classify(raw) is ErrorKind.DUPLICATE_SUBMISSION

    def test_never_produces_validation_error(self):
        assert classify("Please write at least 10 characters") is not ErrorKind.VALIDATION_ERROR


# =============================================================================
# MESSAGES
# =============================================================================


@pytest.mark.unit
class TestDescribe:
    """User-facing messages per kind."""

    def test_every_kind_has_a_message(self):
        assert set(MESSAGES) == set(ErrorKind)

    def test_duplicate_vote_message(self):
        assert describe(ErrorKind.DUPLICATE_SUBMISSION, "Already voted") == (
            "You have already voted on this review."
        )

    def test_duplicate_review_message(self):
        assert describe(ErrorKind.DUPLICATE_SUBMISSION, "Already reviewed") == (
            "You have already reviewed this project."
        )

    def test_rejection_carries_reason(self):
        raw = LedgerRPCError(message="execution reverted", reason="Project not active")
        assert describe(ErrorKind.REMOTE_REJECTED, raw) == (
            "The ledger rejected the transaction: Project not active"
        )

    def test_generic_message_without_raw(self):
        assert describe(ErrorKind.UNKNOWN) == MESSAGES[ErrorKind.UNKNOWN]


@pytest.mark.unit
class TestClassifyFailure:
    def test_duplicate_is_idempotent(self):
        failure = classify_failure(
            LedgerRPCError(message="execution reverted", reason="Already reviewed")
        )

        assert failure.kind is ErrorKind.DUPLICATE_SUBMISSION
        assert failure.idempotent is True
        assert failure.detail == "Already reviewed"

    def test_other_failures_are_not_idempotent(self):
        failure = classify_failure(LedgerUnavailableError(message="ledger_submit timed out"))

        assert failure.kind is ErrorKind.UNAVAILABLE
        assert failure.idempotent is False
        assert failure.message == MESSAGES[ErrorKind.UNAVAILABLE]

    def test_reverted_receipt_without_detail(self):
        failure = classify_failure(InclusionReceipt(reference="0x1", status="reverted"))

        assert failure.kind is ErrorKind.REMOTE_REJECTED
        assert failure.message == MESSAGES[ErrorKind.REMOTE_REJECTED]
