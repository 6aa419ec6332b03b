"""Tests for per-identifier record hydration."""

import pytest

from ledger_directory.directory.hydrator import EntityHydrator, HydrationError
from ledger_directory.ledger.client import LedgerRPCError, LedgerUnavailableError
from ledger_directory.ledger.records import RawListingRecord, RawReviewRecord
from ledger_directory.ledger.surfaces import CollectionKind
from tests.fakes import FakeLedger


@pytest.fixture
def listing_hydrator(ledger: FakeLedger) -> EntityHydrator:
    return EntityHydrator(ledger, CollectionKind.LISTINGS)


@pytest.fixture
def review_hydrator(ledger: FakeLedger) -> EntityHydrator:
    return EntityHydrator(ledger, CollectionKind.REVIEWS)


@pytest.mark.unit
class TestListingHydration:
    """Hydrating listing identifiers."""

    async def test_returns_validated_record(self, ledger, listing_hydrator):
        ledger.add_listing("1", averageRating=433, reviewCount=3)

        record = await listing_hydrator.hydrate("1")

        assert isinstance(record, RawListingRecord)
        assert record.identifier == "1"
        assert record.rating_raw == 433
        assert record.review_count == 3
        assert ledger.detail_calls == [(CollectionKind.LISTINGS, "1")]

    async def test_accepts_hex_and_decimal_string_integers(self, ledger, listing_hydrator):
        ledger.add_listing("2", id="0x2", reviewCount="0x3", averageRating="433", timestamp="0x10")

        record = await listing_hydrator.hydrate("2")

        assert record.identifier == "2"
        assert record.review_count == 3
        assert record.rating_raw == 433
        assert record.created_at == 16

    async def test_missing_record_is_none(self, listing_hydrator):
        assert await listing_hydrator.hydrate("99") is None

    async def test_inactive_record_is_none(self, ledger, listing_hydrator):
        ledger.add_listing("3", isActive=False)
        assert await listing_hydrator.hydrate("3") is None

    async def test_blank_name_is_none(self, ledger, listing_hydrator):
        ledger.add_listing("4", name="   ")
        assert await listing_hydrator.hydrate("4") is None

    async def test_transport_failure_raises_hydration_error(self, ledger, listing_hydrator):
        cause = LedgerUnavailableError(message="ledger_call timed out")
        ledger.add_listing("5")
        ledger.detail_errors["5"] = cause

        with pytest.raises(HydrationError) as exc_info:
            await listing_hydrator.hydrate("5")

        assert exc_info.value.identifier == "5"
        assert exc_info.value.cause is cause

    async def test_rejected_call_raises_hydration_error(self, ledger, listing_hydrator):
        ledger.add_listing("6")
        ledger.detail_errors["6"] = LedgerRPCError(message="execution reverted")

        with pytest.raises(HydrationError):
            await listing_hydrator.hydrate("6")

    async def test_malformed_record_raises_hydration_error(self, ledger, listing_hydrator):
        ledger.add_listing("7", timestamp="yesterday")

        with pytest.raises(HydrationError, match="'7'"):
            await listing_hydrator.hydrate("7")

    async def test_negative_review_count_is_malformed(self, ledger, listing_hydrator):
        ledger.add_listing("8", reviewCount=-1)

        with pytest.raises(HydrationError):
            await listing_hydrator.hydrate("8")


@pytest.mark.unit
class TestReviewHydration:
    """Hydrating review identifiers."""

    async def test_returns_validated_record(self, ledger, review_hydrator):
        ledger.add_review("10", "1", rating=5, helpfulVotes="0x2")

        record = await review_hydrator.hydrate("10")

        assert isinstance(record, RawReviewRecord)
        assert record.listing_identifier == "1"
        assert record.rating_stars == 5
        assert record.helpful_votes == 2

    @pytest.mark.parametrize("rating", [0, 6])
    async def test_out_of_range_rating_is_malformed(self, ledger, review_hydrator, rating):
        ledger.add_review("11", "1", rating=rating)

        with pytest.raises(HydrationError):
            await review_hydrator.hydrate("11")

    async def test_inactive_review_is_none(self, ledger, review_hydrator):
        ledger.add_review("12", "1", isActive=False)
        assert await review_hydrator.hydrate("12") is None
