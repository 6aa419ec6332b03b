"""
Unit tests for CLI module (ledger_directory/cli.py).

Tests cover:
- Command parsing and global overrides
- listings and reviews commands, including the unavailable state
- submit-listing, submit-review and vote-helpful outcomes
- Presentation helpers (filtering and sorting)
"""

from datetime import UTC, datetime

import pytest

from ledger_directory import cli
from ledger_directory.config import DirectoryConfig, LedgerSettings, SyncSettings
from ledger_directory.directory.types import Listing
from ledger_directory.ledger.client import LedgerRPCError, LedgerUnavailableError
from tests.fakes import FakeLedger

# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def cli_config(monkeypatch) -> DirectoryConfig:
    """Configuration with a contract set and no re-check delay."""
    cfg = DirectoryConfig(
        ledger=LedgerSettings(rpc_url="http://test-ledger:8545", contract_address="0xabc"),
        sync=SyncSettings(recheck_attempts=1, recheck_delay=0.0),
    )
    monkeypatch.setattr(cli, "config", cfg)
    # Keep pytest's log capture handlers in place
    monkeypatch.setattr(cli, "configure_logging", lambda: None)
    return cfg


@pytest.fixture
def ledger(monkeypatch) -> FakeLedger:
    """Replace the RPC client with an in-memory ledger."""
    ledger = FakeLedger()
    ledger.opened_with = []

    class FakeClient:
        def __init__(self, settings):
            ledger.opened_with.append(settings)

        async def __aenter__(self):
            return ledger

        async def __aexit__(self, *exc_info):
            return None

    monkeypatch.setattr(cli, "LedgerRPCClient", FakeClient)
    return ledger


def _listing(identifier, name, *, rating=0.0, reviews=0, day=1, category="DeFi") -> Listing:
    return Listing(
        identifier=identifier,
        name=name,
        description=f"{name} description",
        category=category,
        external_url=f"https://{identifier}.example",
        image_url="",
        owner_address="0x0",
        rating=rating,
        review_count=reviews,
        created_at=datetime(2024, 1, day, tzinfo=UTC),
        tags=cli.CATEGORY_TAGS.get(category, ()),
    )


# ============================================================================
# PARSING TESTS
# ============================================================================


@pytest.mark.unit
def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "ledger-directory" in capsys.readouterr().out


@pytest.mark.unit
def test_invalid_sort_key_is_rejected():
    with pytest.raises(SystemExit):
        cli.main(["listings", "--sort", "popularity"])


@pytest.mark.unit
def test_global_flags_override_config(ledger):
    assert cli.main(["--rpc-url", "http://other:8545/", "--contract", "0xdef", "listings"]) == 0

    (settings,) = ledger.opened_with
    assert settings.rpc_url == "http://other:8545"
    assert settings.contract_address == "0xdef"


@pytest.mark.unit
def test_global_flags_do_not_mutate_config(ledger, cli_config):
    cli.main(["--timeout", "3", "listings"])

    assert cli_config.ledger.timeout == 30.0
    assert ledger.opened_with[0].timeout == 3.0


@pytest.mark.unit
def test_missing_contract_is_reported(cli_config, capsys):
    cli_config.ledger.contract_address = ""

    assert cli.main(["listings"]) == 1
    assert "contract_address" in capsys.readouterr().err


# ============================================================================
# READ COMMAND TESTS
# ============================================================================


@pytest.mark.unit
def test_listings_sorted_by_rating(ledger, capsys):
    ledger.add_listing("1", name="Low", averageRating=210, reviewCount=2)
    ledger.add_listing("2", name="High", averageRating=480, reviewCount=5)

    assert cli.main(["listings"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert "High" in lines[0]
    assert "4.8 stars" in lines[0]
    assert "Low" in lines[1]


@pytest.mark.unit
def test_listings_category_filter(ledger, capsys):
    ledger.add_listing("1", name="Swap", category="DeFi")
    ledger.add_listing("2", name="Arena", category="Games")

    cli.main(["listings", "--category", "Games"])

    out = capsys.readouterr().out
    assert "Arena" in out
    assert "Swap" not in out


@pytest.mark.unit
def test_empty_directory(ledger, capsys):
    assert cli.main(["listings"]) == 0
    assert "No listings found." in capsys.readouterr().out


@pytest.mark.unit
def test_unavailable_directory(ledger, capsys):
    ledger.enumerate_error = LedgerUnavailableError(message="ledger_call timed out")

    assert cli.main(["listings"]) == 1

    captured = capsys.readouterr()
    assert "Could not load the directory" in captured.err
    assert "No listings to show." in captured.out


@pytest.mark.unit
def test_reviews_newest_first(ledger, capsys):
    ledger.add_review("1", "7", comment="older review text", timestamp=1_700_000_000)
    ledger.add_review("2", "7", comment="newer review text", timestamp=1_700_900_000)

    assert cli.main(["reviews", "7"]) == 0

    out = capsys.readouterr().out
    assert out.index("newer review text") < out.index("older review text")


@pytest.mark.unit
def test_reviews_print_average(ledger, capsys):
    ledger.add_review("1", "7", rating=4)
    ledger.add_review("2", "7", rating=5)

    assert cli.main(["reviews", "7"]) == 0
    assert "4.5 stars from 2 reviews" in capsys.readouterr().out


@pytest.mark.unit
def test_no_reviews(ledger, capsys):
    assert cli.main(["reviews", "7"]) == 0
    assert "No reviews yet." in capsys.readouterr().out


# ============================================================================
# WRITE COMMAND TESTS
# ============================================================================


@pytest.mark.unit
def test_submit_review_settles(ledger, capsys):
    ledger.add_listing("7")

    def apply(ledger, call):
        ledger.listings["7"]["reviewCount"] += 1

    ledger.on_include = apply

    code = cli.main(["submit-review", "7", "--rating", "5", "--comment", "Great tool, works well"])

    assert code == 0
    assert "SubmitReview settled" in capsys.readouterr().out
    assert ledger.submitted[0].function == "submitReview"


@pytest.mark.unit
def test_submit_review_short_comment_never_submits(ledger, capsys):
    code = cli.main(["submit-review", "7", "--rating", "5", "--comment", "short"])

    assert code == 1
    assert "at least 10 characters" in capsys.readouterr().err
    assert ledger.submitted == []


@pytest.mark.unit
def test_duplicate_vote_is_reported(ledger, capsys):
    ledger.submit_error = LedgerRPCError(message="execution reverted", reason="Already voted")

    assert cli.main(["vote-helpful", "12"]) == 1

    err = capsys.readouterr().err
    assert "You have already voted on this review." in err
    assert "nothing to retry" in err


@pytest.mark.unit
def test_submit_listing_attaches_fee(ledger, capsys):
    ledger.on_include = lambda ledger, call: ledger.add_listing("1", name=call.args[0])

    code = cli.main(
        [
            "submit-listing",
            "--name",
            "Swap Router",
            "--description",
            "Routes swaps",
            "--category",
            "DeFi",
            "--url",
            "https://swap.example",
            "--builder-name",
            "Alice",
        ]
    )

    assert code == 0
    assert "fee 0.001 ETH" in capsys.readouterr().out
    assert ledger.submitted[0].value == 10**15


LISTING_ARGS = [
    "submit-listing",
    "--name",
    "Swap Router",
    "--description",
    "Routes swaps",
    "--category",
    "DeFi",
    "--url",
    "https://swap.example",
    "--builder-name",
    "Alice",
]


@pytest.mark.unit
def test_submit_listing_fee_override(ledger, capsys):
    assert cli.main([*LISTING_ARGS, "--fee", "0.002"]) == 0

    assert "fee 0.002 ETH" in capsys.readouterr().out
    assert ledger.submitted[0].value == 2 * 10**15


@pytest.mark.unit
@pytest.mark.parametrize("fee", ["cheap", "-1", "0.0000000000000000001"])
def test_submit_listing_invalid_fee(ledger, capsys, fee):
    assert cli.main([*LISTING_ARGS, "--fee", fee]) == 1

    assert "Invalid fee" in capsys.readouterr().err
    assert ledger.submitted == []


@pytest.mark.unit
def test_config_command(capsys):
    assert cli.main(["config"]) == 0
    assert "DIRECTORY CONFIGURATION" in capsys.readouterr().out


# ============================================================================
# PRESENTATION HELPER TESTS
# ============================================================================


@pytest.mark.unit
class TestPresentationHelpers:
    def test_search_matches_name_description_and_tags(self):
        listings = [
            _listing("1", "Swap Router"),
            _listing("2", "Arena", category="Games"),
        ]

        assert [item.identifier for item in cli.filter_listings(listings, search="router")] == ["1"]
        assert [item.identifier for item in cli.filter_listings(listings, search="gaming")] == ["2"]
        assert len(cli.filter_listings(listings, category="All")) == 2

    def test_sort_keys(self):
        listings = [
            _listing("1", "beta", rating=3.0, reviews=9, day=1),
            _listing("2", "Alpha", rating=4.5, reviews=2, day=3),
            _listing("3", "gamma", rating=1.0, reviews=5, day=2),
        ]

        def ids(key):
            return [item.identifier for item in cli.sort_listings(listings, key)]

        assert ids("rating") == ["2", "1", "3"]
        assert ids("reviews") == ["1", "3", "2"]
        assert ids("recent") == ["2", "3", "1"]
        assert ids("name") == ["2", "1", "3"]

    def test_unknown_sort_key(self):
        with pytest.raises(ValueError):
            cli.sort_listings([], "popularity")
