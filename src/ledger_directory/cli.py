"""
Command-line interface for the ledger directory.

Provides CLI commands for browsing the directory and submitting writes:
- listings: Refresh and print the directory
- reviews: Print the reviews of one listing, newest first
- submit-listing: Submit a new listing (the listing fee is attached)
- submit-review: Review a listing
- vote-helpful: Mark a review as helpful
- config: Print the effective configuration

Usage:
    ledger-directory listings [--category CATEGORY] [--search TEXT] [--sort rating]
    ledger-directory reviews LISTING_ID
    ledger-directory submit-review LISTING_ID --rating 5 --comment "Works great"
    ledger-directory --rpc-url http://localhost:8545 --contract 0xabc... listings

Global flags override the configuration file and environment variables
(see ``ledger_directory.config``).
"""

import argparse
import asyncio
import sys
from collections.abc import Iterable, Sequence
from dataclasses import replace

from ledger_directory.config import LedgerSettings, config, configure_logging, print_config_summary
from ledger_directory.directory.numeric import (
    average_rating_raw,
    ether_to_wei,
    to_display_rating,
    wei_to_ether,
)
from ledger_directory.directory.synchronizer import (
    CATEGORY_TAGS,
    DirectorySynchronizer,
    DirectoryUnavailableError,
)
from ledger_directory.directory.transactions import (
    HelpfulVote,
    ListingSubmission,
    ReviewSubmission,
    TransactionCoordinator,
    TransactionHandle,
    TransactionKind,
)
from ledger_directory.directory.types import Listing, Review
from ledger_directory.ledger.client import LedgerRPCClient

SORT_KEYS = ("rating", "reviews", "recent", "name")

# ============================================================================
# PRESENTATION HELPERS
# ============================================================================


def filter_listings(
    listings: Iterable[Listing], category: str | None = None, search: str | None = None
) -> list[Listing]:
    """
    Narrow listings by category and free-text search.

    ``category`` of None or ``"All"`` keeps every category.  ``search`` is
    matched case-insensitively against name, description and tags.
    """
    result = []
    needle = (search or "").strip().lower()
    for listing in listings:
        if category and category != "All" and listing.category != category:
            continue
        if needle:
            haystack = " ".join((listing.name, listing.description, *listing.tags)).lower()
            if needle not in haystack:
                continue
        result.append(listing)
    return result


def sort_listings(listings: Iterable[Listing], key: str = "rating") -> list[Listing]:
    """Order listings for display; ties keep directory order."""
    items = list(listings)
    if key == "rating":
        return sorted(items, key=lambda item: item.rating, reverse=True)
    if key == "reviews":
        return sorted(items, key=lambda item: item.review_count, reverse=True)
    if key == "recent":
        return sorted(items, key=lambda item: item.created_at, reverse=True)
    if key == "name":
        return sorted(items, key=lambda item: item.name.lower())
    raise ValueError(f"Unknown sort key: {key}")


def format_listing(listing: Listing) -> str:
    marker = "*" if listing.featured else " "
    return (
        f"{marker} [{listing.identifier}] {listing.name} ({listing.category}) "
        f"{listing.rating:.1f} stars, {listing.review_count} reviews  {listing.external_url}"
    )


def format_review(review: Review) -> str:
    stamp = review.created_at.strftime("%Y-%m-%d")
    return (
        f"[{review.identifier}] {review.rating_stars}/5 by {review.author_address} "
        f"on {stamp} ({review.helpful_votes} helpful)\n    {review.comment}"
    )


def format_review_summary(reviews: Sequence[Review]) -> str:
    """One-line average of the reviews shown, as the ledger would compute it."""
    total = sum(review.rating_stars for review in reviews)
    rating = to_display_rating(average_rating_raw(total, len(reviews)), len(reviews))
    return f"{rating:.1f} stars from {len(reviews)} reviews"


def report_transaction(handle: TransactionHandle) -> int:
    """Print a terminal write outcome; return the process exit code."""
    if handle.succeeded:
        print(f"{handle.kind.value} settled (reference {handle.submission_reference}).")
        return 0
    failure = handle.failure
    if failure is None:
        print(f"{handle.kind.value} ended in {handle.phase.value}.", file=sys.stderr)
        return 1
    print(f"{handle.kind.value} failed: {failure.message}", file=sys.stderr)
    if failure.idempotent:
        print("The ledger already holds this action; nothing to retry.", file=sys.stderr)
    return 1


# ============================================================================
# SETTINGS
# ============================================================================


def ledger_settings_from_args(args: argparse.Namespace) -> LedgerSettings:
    """Apply the global command-line overrides to ``config.ledger``."""
    settings = replace(config.ledger)
    if getattr(args, "rpc_url", None):
        settings.rpc_url = args.rpc_url.rstrip("/")
    if getattr(args, "contract", None):
        settings.contract_address = args.contract
    if getattr(args, "timeout", None) is not None:
        settings.timeout = args.timeout
    return settings


# ============================================================================
# COMMANDS
# ============================================================================


async def _show_listings(args: argparse.Namespace) -> int:
    async with LedgerRPCClient(ledger_settings_from_args(args)) as client:
        synchronizer = DirectorySynchronizer.from_settings(client, config.sync)
        try:
            listings = await synchronizer.refresh()
        except DirectoryUnavailableError as e:
            print(f"Could not load the directory: {e}", file=sys.stderr)
            print("No listings to show.")
            return 1

    shown = sort_listings(filter_listings(listings, args.category, args.search), args.sort)
    if not shown:
        print("No listings found.")
        return 0
    for listing in shown:
        print(format_listing(listing))
    return 0


def cmd_listings(args: argparse.Namespace) -> int:
    """
    Refresh the directory and print it.

    Returns:
        0 on success, 1 if the ledger could not be reached
    """
    return asyncio.run(_show_listings(args))


async def _show_reviews(args: argparse.Namespace) -> int:
    async with LedgerRPCClient(ledger_settings_from_args(args)) as client:
        synchronizer = DirectorySynchronizer.from_settings(client, config.sync)
        try:
            reviews = await synchronizer.refresh_reviews(args.listing_id)
        except DirectoryUnavailableError as e:
            print(f"Could not load reviews: {e}", file=sys.stderr)
            return 1

    if not reviews:
        print("No reviews yet.")
        return 0
    print(format_review_summary(reviews))
    for review in reviews:
        print(format_review(review))
    return 0


def cmd_reviews(args: argparse.Namespace) -> int:
    """Print the reviews of one listing, newest first."""
    return asyncio.run(_show_reviews(args))


async def _run_write(
    args: argparse.Namespace,
    kind: TransactionKind,
    write_args,
    listing_fee_wei: int | None = None,
) -> int:
    async with LedgerRPCClient(ledger_settings_from_args(args)) as client:
        synchronizer = DirectorySynchronizer.from_settings(client, config.sync)
        coordinator = TransactionCoordinator.from_settings(
            client, synchronizer, config.transactions
        )
        if listing_fee_wei is not None:
            coordinator.listing_fee_wei = listing_fee_wei
        handle = await coordinator.submit(kind, write_args)
    return report_transaction(handle)


def cmd_submit_listing(args: argparse.Namespace) -> int:
    """Submit a new listing with the configured (or --fee) listing fee."""
    fee_wei = config.transactions.listing_fee_wei
    if args.fee is not None:
        try:
            fee_wei = ether_to_wei(args.fee)
        except (ArithmeticError, ValueError):
            raise ValueError(f"Invalid fee: {args.fee}") from None
        if fee_wei < 0:
            raise ValueError(f"Invalid fee: {args.fee}")
    print(f"Submitting listing (fee {wei_to_ether(fee_wei)} ETH)...")
    submission = ListingSubmission(
        name=args.name,
        description=args.description,
        category=args.category,
        external_url=args.url,
        builder_name=args.builder_name,
        image_url=args.image_url or "",
        builder_bio=args.builder_bio or "",
        social_handle=args.social_handle or "",
    )
    return asyncio.run(
        _run_write(args, TransactionKind.SUBMIT_LISTING, submission, listing_fee_wei=fee_wei)
    )


def cmd_submit_review(args: argparse.Namespace) -> int:
    """Submit a review of one listing."""
    submission = ReviewSubmission(
        listing_id=args.listing_id, rating=args.rating, comment=args.comment
    )
    return asyncio.run(_run_write(args, TransactionKind.SUBMIT_REVIEW, submission))


def cmd_vote_helpful(args: argparse.Namespace) -> int:
    """Mark a review as helpful."""
    vote = HelpfulVote(review_id=args.review_id)
    return asyncio.run(_run_write(args, TransactionKind.VOTE_HELPFUL, vote))


def cmd_config(args: argparse.Namespace) -> int:
    """Print the effective configuration."""
    print_config_summary()
    return 0


# ============================================================================
# ENTRY POINT
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger-directory",
        description="Ledger Directory - browse and review applications recorded on a ledger",
    )
    parser.add_argument("--rpc-url", type=str, help="Ledger JSON-RPC endpoint")
    parser.add_argument("--contract", type=str, help="Directory contract address")
    parser.add_argument("--timeout", type=float, help="Per-call timeout in seconds")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # listings command
    listings_parser = subparsers.add_parser(
        "listings",
        help="Refresh and print the directory",
        description="Read every listing from the ledger and print it.",
    )
    listings_parser.add_argument(
        "--category",
        choices=["All", *CATEGORY_TAGS],
        help="Only show one category",
    )
    listings_parser.add_argument("--search", type=str, help="Case-insensitive text filter")
    listings_parser.add_argument(
        "--sort", choices=SORT_KEYS, default="rating", help="Display order (default: rating)"
    )
    listings_parser.set_defaults(func=cmd_listings)

    # reviews command
    reviews_parser = subparsers.add_parser("reviews", help="Print the reviews of a listing")
    reviews_parser.add_argument("listing_id", type=str)
    reviews_parser.set_defaults(func=cmd_reviews)

    # submit-listing command
    listing_parser = subparsers.add_parser(
        "submit-listing",
        help="Submit a new listing",
        description="Submit a new listing. The listing fee is attached to the transaction.",
    )
    listing_parser.add_argument("--name", required=True)
    listing_parser.add_argument("--description", required=True)
    listing_parser.add_argument("--category", required=True, choices=list(CATEGORY_TAGS))
    listing_parser.add_argument("--url", required=True, help="The application's URL")
    listing_parser.add_argument("--builder-name", required=True)
    listing_parser.add_argument("--image-url")
    listing_parser.add_argument("--builder-bio")
    listing_parser.add_argument("--social-handle")
    listing_parser.add_argument(
        "--fee", help="Listing fee in ETH (default: the configured listing fee)"
    )
    listing_parser.set_defaults(func=cmd_submit_listing)

    # submit-review command
    review_parser = subparsers.add_parser("submit-review", help="Review a listing")
    review_parser.add_argument("listing_id", type=str)
    review_parser.add_argument("--rating", type=int, required=True, help="1 to 5 stars")
    review_parser.add_argument("--comment", required=True)
    review_parser.set_defaults(func=cmd_submit_review)

    # vote-helpful command
    vote_parser = subparsers.add_parser("vote-helpful", help="Mark a review as helpful")
    vote_parser.add_argument("review_id", type=str)
    vote_parser.set_defaults(func=cmd_vote_helpful)

    # config command
    config_parser = subparsers.add_parser("config", help="Print the effective configuration")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging()
    try:
        return args.func(args)
    except ValueError as e:
        # Missing endpoint or contract address
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
