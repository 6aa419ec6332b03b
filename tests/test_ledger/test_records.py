"""Unit tests for raw ledger record models."""

import pytest
from pydantic import ValidationError

from ledger_directory.ledger.records import (
    MAX_TIMESTAMP,
    RawListingRecord,
    RawReviewRecord,
    normalize_identifier,
    parse_ledger_int,
)
from tests.fakes import listing_record, review_record


@pytest.mark.unit
class TestParseLedgerInt:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(433, 433), ("433", 433), ("0x1b1", 433), (" 0X1B1 ", 433), ("-0x1", -1)],
    )
    def test_integer_encodings(self, value, expected):
        assert parse_ledger_int(value) == expected

    @pytest.mark.parametrize("value", [True, 4.33, None, "4.33", "abc"])
    def test_rejects_non_integers(self, value):
        with pytest.raises(ValueError):
            parse_ledger_int(value)


@pytest.mark.unit
def test_normalize_identifier():
    assert normalize_identifier("0x0a") == "10"
    assert normalize_identifier(7) == "7"
    assert normalize_identifier("listing-7") == "listing-7"


@pytest.mark.unit
@pytest.mark.parametrize("value", ["", "   ", None])
def test_normalize_identifier_rejects_blank(value):
    with pytest.raises(ValueError, match="invalid ledger identifier"):
        normalize_identifier(value)


@pytest.mark.unit
class TestRawListingRecord:
    def test_wire_aliases(self):
        record = RawListingRecord.model_validate(
            listing_record("3", url="https://x.example", imageUrl="https://x.example/i.png")
        )

        assert record.identifier == "3"
        assert record.external_url == "https://x.example"
        assert record.image_url == "https://x.example/i.png"
        assert record.active is True

    def test_unknown_fields_are_ignored(self):
        record = RawListingRecord.model_validate(listing_record("3", builderBio="hi"))
        assert not hasattr(record, "builderBio")

    def test_missing_name_is_rejected(self):
        raw = listing_record("3")
        del raw["name"]

        with pytest.raises(ValidationError):
            RawListingRecord.model_validate(raw)

    @pytest.mark.parametrize("timestamp", [-1, 10**13])
    def test_unrepresentable_timestamp_is_rejected(self, timestamp):
        with pytest.raises(ValidationError):
            RawListingRecord.model_validate(listing_record("3", timestamp=timestamp))

    def test_records_are_frozen(self):
        record = RawListingRecord.model_validate(listing_record("3"))

        with pytest.raises(ValidationError):
            record.name = "Renamed"


@pytest.mark.unit
class TestRawReviewRecord:
    def test_wire_aliases(self):
        record = RawReviewRecord.model_validate(review_record("10", "0x3"))

        assert record.listing_identifier == "3"
        assert record.author_address.startswith("0x")

    def test_negative_helpful_votes_are_rejected(self):
        with pytest.raises(ValidationError):
            RawReviewRecord.model_validate(review_record("10", "3", helpfulVotes=-1))

    def test_timestamp_upper_bound(self):
        with pytest.raises(ValidationError):
            RawReviewRecord.model_validate(review_record("10", "3", timestamp=MAX_TIMESTAMP + 1))

        record = RawReviewRecord.model_validate(review_record("10", "3", timestamp=MAX_TIMESTAMP))
        assert record.created_at == MAX_TIMESTAMP
