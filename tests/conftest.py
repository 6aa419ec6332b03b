"""
Shared pytest fixtures for the ledger directory test suite.

This module provides fixtures that are automatically available to all test files:
- An in-memory ledger implementing the read and write surfaces
- A fresh event bus per test
- Synchronizer and transaction coordinator wired to the fake ledger

Waiting between post-settlement re-reads is replaced by a recording stub so
no test sleeps for real.
"""

from collections.abc import Awaitable, Callable

import pytest

from ledger_directory.core.bus import DirectoryBus
from ledger_directory.directory.synchronizer import DirectorySynchronizer
from ledger_directory.directory.transactions import TransactionCoordinator
from tests.fakes import FakeLedger

# ============================================================================
# LEDGER FIXTURES
# ============================================================================


@pytest.fixture
def ledger() -> FakeLedger:
    """Empty in-memory ledger."""
    return FakeLedger()


@pytest.fixture
def bus() -> DirectoryBus:
    """Fresh event bus for one test."""
    return DirectoryBus()


# ============================================================================
# DIRECTORY FIXTURES
# ============================================================================


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays.

    ``hooks`` run in order, one per call, so a test can change the ledger
    "while" the synchronizer waits.
    """

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.hooks: list[Callable[[], None]] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.hooks:
            self.hooks.pop(0)()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def synchronizer(
    ledger: FakeLedger, bus: DirectoryBus, sleeper: Callable[[float], Awaitable[None]]
) -> DirectorySynchronizer:
    """Synchronizer over the fake ledger with three re-checks, 2s apart."""
    return DirectorySynchronizer(
        ledger,
        bus=bus,
        max_concurrency=4,
        recheck_attempts=3,
        recheck_delay=2.0,
        sleep=sleeper,
    )


@pytest.fixture
def coordinator(
    ledger: FakeLedger, synchronizer: DirectorySynchronizer, bus: DirectoryBus
) -> TransactionCoordinator:
    """Coordinator writing to the fake ledger."""
    return TransactionCoordinator(ledger, synchronizer, bus=bus)


@pytest.fixture
def refresh_calls(synchronizer: DirectorySynchronizer, monkeypatch: pytest.MonkeyPatch) -> list:
    """
    Record every ``synchronizer.refresh`` call.

    Each entry is the ``expect`` argument of one call; the real refresh still
    runs.
    """
    calls: list = []
    original = synchronizer.refresh

    async def recording_refresh(*, expect=None, ticket=None):
        calls.append(expect)
        return await original(expect=expect, ticket=ticket)

    monkeypatch.setattr(synchronizer, "refresh", recording_refresh)
    return calls
