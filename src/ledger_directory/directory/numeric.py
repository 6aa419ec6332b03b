"""Conversions from ledger integer encodings to display values.

The ledger stores no floating point.  Ratings are averages in hundredths of a
star, amounts are integers in wei, and times are seconds since the epoch.
Every function here is pure and total over its documented domain.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

RATING_SCALE = 100
MAX_STARS = 5
WEI_PER_ETHER = 10**18

_ONE_DECIMAL = Decimal("0.1")


def _require_int(value: object, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    return value


def to_display_rating(raw: int, review_count: int | None = None) -> float:
    """Convert a fixed-point rating to stars in [0, 5], one decimal, half-up.

    A listing with no reviews always displays 0.0, whatever ``raw`` says.

    >>> to_display_rating(433)
    4.3
    >>> to_display_rating(435)
    4.4
    """
    _require_int(raw, "raw")
    if review_count is not None and _require_int(review_count, "review_count") <= 0:
        return 0.0

    stars = Decimal(raw) / RATING_SCALE
    stars = min(max(stars, Decimal(0)), Decimal(MAX_STARS))
    return float(stars.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def average_rating_raw(total_stars: int, count: int) -> int:
    """Fixed-point average (hundredths of a star) of ``count`` ratings.

    Returns 0 when there is nothing to average.
    """
    _require_int(total_stars, "total_stars")
    if _require_int(count, "count") <= 0:
        return 0
    average = Decimal(total_stars) * RATING_SCALE / count
    return int(average.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def wei_to_ether(value: int) -> Decimal:
    """Exact ether amount for ``value`` wei."""
    return Decimal(_require_int(value, "value")) / WEI_PER_ETHER


def ether_to_wei(value: Decimal | str | int) -> int:
    """Wei for an ether amount.

    Raises:
        ValueError: If the amount has more precision than one wei.
    """
    amount = Decimal(value) * WEI_PER_ETHER
    if amount != amount.to_integral_value():
        raise ValueError(f"{value} ether is not a whole number of wei")
    return int(amount)


def timestamp_to_datetime(seconds: int) -> datetime:
    """UTC datetime for a ledger timestamp."""
    return datetime.fromtimestamp(_require_int(seconds, "seconds"), tz=UTC)
