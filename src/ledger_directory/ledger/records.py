"""
Pydantic models for raw ledger records.

These models describe the detail records exactly as the directory contract
returns them, before any normalization.  They exist so that a malformed
record is rejected at the boundary instead of leaking half-parsed values into
the view model.

Ledger integers are unbounded, so a JSON-RPC gateway may encode them as JSON
numbers, decimal strings or ``0x``-prefixed hex strings.  Every integer field
accepts all three.

Models:
1. RawListingRecord: one ``getProject`` result (record plus averageRating)
2. RawReviewRecord: one ``reviews`` result
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Latest instant a datetime can hold: 9999-12-31T23:59:59Z
MAX_TIMESTAMP = 253_402_300_799


def parse_ledger_int(value: Any) -> int:
    """
    Coerce a ledger integer encoding to ``int``.

    Args:
        value: int, decimal string or 0x-hex string.

    Raises:
        ValueError: If the value is not an integer encoding (bools and floats
            are rejected rather than truncated).
    """
    if isinstance(value, bool):
        raise ValueError("boolean is not a ledger integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith(("0x", "-0x")):
            return int(text, 16)
        return int(text, 10)
    raise ValueError(f"unsupported ledger integer encoding: {type(value).__name__}")


def normalize_identifier(value: Any) -> str:
    """Canonical string form of a ledger identifier (decimal when numeric).

    Raises:
        ValueError: If ``value`` is neither an integer encoding nor a
            non-blank string.
    """
    try:
        return str(parse_ledger_int(value))
    except ValueError:
        text = value.strip() if isinstance(value, str) else ""
        if not text:
            raise ValueError(f"invalid ledger identifier: {value!r}") from None
        return text


class _LedgerRecord(BaseModel):
    """Shared model configuration for raw records."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class RawListingRecord(_LedgerRecord):
    """
    A directory listing as stored on the ledger.

    Attributes:
        identifier: Ledger-assigned listing id
        name, description, category: Display strings fixed at creation
        external_url: The application's URL
        image_url: Optional logo/image URL (empty when not supplied)
        owner_address: Address of the submitting builder
        created_at: Seconds since epoch, ledger-assigned
        review_count: Number of reviews recorded for the listing
        active: False when the listing has been logically removed
        rating_raw: Average rating in hundredths of a star
    """

    identifier: str = Field(alias="id")
    name: str
    description: str = ""
    category: str = ""
    external_url: str = Field(default="", alias="url")
    image_url: str = Field(default="", alias="imageUrl")
    owner_address: str = Field(alias="builder")
    created_at: int = Field(alias="timestamp", ge=0, le=MAX_TIMESTAMP)
    review_count: int = Field(default=0, alias="reviewCount", ge=0)
    active: bool = Field(alias="isActive")
    rating_raw: int = Field(default=0, alias="averageRating")

    @field_validator("identifier", mode="before")
    @classmethod
    def _identifier(cls, value: Any) -> str:
        return normalize_identifier(value)

    @field_validator("created_at", "review_count", "rating_raw", mode="before")
    @classmethod
    def _ledger_int(cls, value: Any) -> int:
        return parse_ledger_int(value)


class RawReviewRecord(_LedgerRecord):
    """
    A review as stored on the ledger.

    Attributes:
        identifier: Ledger-assigned review id
        listing_identifier: The listing this review belongs to
        author_address: Reviewer's address
        rating_stars: Whole-star rating, 1 to 5
        comment: Review text
        created_at: Seconds since epoch, ledger-assigned
        helpful_votes: Helpful-vote tally
        active: False when the review has been logically removed
    """

    identifier: str = Field(alias="id")
    listing_identifier: str = Field(alias="projectId")
    author_address: str = Field(alias="reviewer")
    rating_stars: int = Field(alias="rating", ge=1, le=5)
    comment: str = ""
    created_at: int = Field(alias="timestamp", ge=0, le=MAX_TIMESTAMP)
    helpful_votes: int = Field(default=0, alias="helpfulVotes", ge=0)
    active: bool = Field(alias="isActive")

    @field_validator("identifier", "listing_identifier", mode="before")
    @classmethod
    def _identifier(cls, value: Any) -> str:
        return normalize_identifier(value)

    @field_validator("rating_stars", "created_at", "helpful_votes", mode="before")
    @classmethod
    def _ledger_int(cls, value: Any) -> int:
        return parse_ledger_int(value)
