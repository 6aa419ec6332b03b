"""
Directory Event Bus

The outward-facing collaborator interface of the directory core. Presentation
layers never poll the synchronizer or the transaction coordinator; they
subscribe to the facts those components publish here.

=============================================================================
EVENT TYPES
=============================================================================

    directory:refreshed          detail: {"snapshot": DirectorySnapshot}
    directory:unavailable        detail: {"error": str}
    directory:item_skipped       detail: {"kind": str, "identifier": str, "error": str}
    reviews:refreshed            detail: {"listing_id": str, "reviews": tuple[Review, ...]}
    reviews:unavailable          detail: {"listing_id": str, "error": str}
    transaction:phase_changed    detail: {"handle": TransactionHandle}
    transaction:settled          detail: {"handle": TransactionHandle}
    transaction:failed           detail: {"handle": ..., "kind": ErrorKind, "message": str}
    transaction:abandoned        detail: {"handle": TransactionHandle}

=============================================================================
PRINCIPLES
=============================================================================

1. EVENTS ARE FACTS
   - "directory:refreshed" means a new collection was committed, not
     "please refresh"
   - The bus does not decide outcomes, it records them

2. EMIT IS SYNCHRONOUS
   - Sync handlers run inline, in registration order
   - Async handlers are scheduled on the running loop after the event is
     committed to the log

3. HANDLER ERRORS ARE CONTAINED
   - A failing subscriber is logged and never breaks the emitter or the
     remaining subscribers

=============================================================================
USAGE
=============================================================================

    from ledger_directory.core.bus import DirectoryBus

    bus = DirectoryBus()

    def on_refreshed(event):
        render(event.detail["snapshot"].listings)

    unsubscribe = bus.on("directory:refreshed", on_refreshed)

    # Later: stop listening
    unsubscribe()

=============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# EVENT TYPE CONSTANTS
# =============================================================================

DIRECTORY_REFRESHED = "directory:refreshed"
DIRECTORY_UNAVAILABLE = "directory:unavailable"
DIRECTORY_ITEM_SKIPPED = "directory:item_skipped"
REVIEWS_REFRESHED = "reviews:refreshed"
REVIEWS_UNAVAILABLE = "reviews:unavailable"
TRANSACTION_PHASE_CHANGED = "transaction:phase_changed"
TRANSACTION_SETTLED = "transaction:settled"
TRANSACTION_FAILED = "transaction:failed"
TRANSACTION_ABANDONED = "transaction:abandoned"


# =============================================================================
# TYPE ALIASES
# =============================================================================

# A sync handler takes an event and returns nothing
SyncHandler = Callable[["DirectoryEvent"], None]

# An async handler takes an event and returns a coroutine
AsyncHandler = Callable[["DirectoryEvent"], Coroutine[Any, Any, None]]

EventHandler = SyncHandler | AsyncHandler

# An unsubscribe function takes no args and returns nothing
Unsubscribe = Callable[[], None]


# =============================================================================
# DIRECTORY EVENT
# =============================================================================


@dataclass(frozen=True)
class DirectoryEvent:
    """
    A single event on the bus.

    Attributes:
        type: The event type string, "domain:action" format.
        detail: The event payload. Treat as immutable.
        sequence: Monotonically increasing integer assigned by the bus. The
                  only reliable way to order two events.
        timestamp: Unix epoch milliseconds (UTC) at emission. For display,
                   not for ordering.
        source: Component that emitted the event.
    """

    type: str
    detail: dict = field(default_factory=dict)
    sequence: int = 0
    timestamp: int = 0
    source: str = "directory"

    def __str__(self) -> str:
        return f"DirectoryEvent(type='{self.type}', source='{self.source}', seq={self.sequence})"


# =============================================================================
# DIRECTORY BUS
# =============================================================================


class DirectoryBus:
    """
    In-process publish/subscribe bus.

    Unlike a process-wide singleton, each bus is an ordinary object: a
    synchronizer and the coordinators that feed it share one instance, and
    tests create a fresh one per case.

    Thread Safety:
    - Not thread-safe. The directory core runs on a single asyncio loop.

    Key Methods:
    - emit(): Record an event and notify subscribers
    - on(): Subscribe to an event type (returns unsubscribe function)
    - once(): Subscribe for a single event only
    - wait_for(): Async wait for an event
    - get_event_log(): Retrieve bounded event history
    """

    def __init__(self, *, history: int = 1000) -> None:
        # Handler lists preserve registration order so delivery is deterministic
        self._handlers: dict[str, list[EventHandler]] = {}
        self._event_log: deque[DirectoryEvent] = deque(maxlen=history)
        self._sequence: int = 0
        self._wait_promises: dict[str, list[asyncio.Future[DirectoryEvent]]] = {}

    # =========================================================================
    # EMIT
    # =========================================================================

    def emit(
        self, event_type: str, detail: dict[str, Any] | None = None, source: str = "directory"
    ) -> DirectoryEvent:
        """
        Emit an event to the bus.

        When this returns the event is in the log, every sync handler has run
        and every async handler has been scheduled.

        Args:
            event_type: The type of event (e.g., "directory:refreshed").
            detail: The event payload. Defaults to an empty dict.
            source: Which component is emitting.

        Returns:
            The committed DirectoryEvent.
        """
        self._sequence += 1
        event = DirectoryEvent(
            type=event_type,
            detail=detail if detail is not None else {},
            sequence=self._sequence,
            timestamp=int(datetime.now(UTC).timestamp() * 1000),
            source=source,
        )
        self._event_log.append(event)
        logger.debug("EMIT [%d]: %s from %s", event.sequence, event.type, source)

        self._notify_handlers(event)
        self._resolve_wait_promises(event)
        return event

    def _notify_handlers(self, event: DirectoryEvent) -> None:
        """Deliver ``event`` to its subscribers in registration order."""
        # Copy so handlers may unsubscribe themselves while being notified
        for handler in list(self._handlers.get(event.type, ())):
            try:
                if asyncio.iscoroutinefunction(handler):
                    self._schedule_async_handler(handler, event)
                else:
                    handler(event)
            except Exception as e:
                logger.error(f"Handler error for '{event.type}': {e}", exc_info=True)

    def _schedule_async_handler(self, handler: AsyncHandler, event: DirectoryEvent) -> None:
        """
        Schedule an async handler for execution.

        Inside a running loop the handler becomes a background task; from
        plain sync code it is run to completion with ``asyncio.run()``.
        """
        try:
            loop = asyncio.get_running_loop()
            loop.create_task(handler(event))
        except RuntimeError:
            asyncio.run(handler(event))

    def _resolve_wait_promises(self, event: DirectoryEvent) -> None:
        """Resolve any futures waiting for this event type."""
        if event.type not in self._wait_promises:
            return

        for future in self._wait_promises.pop(event.type):
            if not future.done():
                future.set_result(event)

    # =========================================================================
    # SUBSCRIBE
    # =========================================================================

    def on(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """
        Subscribe to an event type.

        Args:
            event_type: The event type to listen for.
            handler: Sync or async callable receiving the DirectoryEvent.

        Returns:
            An unsubscribe function. Calling it twice is harmless.
        """
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def once(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """Subscribe for the next event of ``event_type`` only."""
        unsub: Unsubscribe | None = None

        def one_time_wrapper(event: DirectoryEvent) -> None:
            try:
                if asyncio.iscoroutinefunction(handler):
                    self._schedule_async_handler(handler, event)
                else:
                    handler(event)
            finally:
                if unsub is not None:
                    unsub()

        unsub = self.on(event_type, one_time_wrapper)
        return unsub

    async def wait_for(self, event_type: str, timeout: float | None = None) -> DirectoryEvent:
        """
        Wait until the next event of ``event_type`` is emitted.

        Raises:
            TimeoutError: If ``timeout`` seconds elapse first.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[DirectoryEvent] = loop.create_future()
        self._wait_promises.setdefault(event_type, []).append(future)
        return await asyncio.wait_for(future, timeout=timeout)

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def get_event_log(
        self, event_type: str | None = None, limit: int | None = None
    ) -> list[DirectoryEvent]:
        """
        Get events from the log, oldest first.

        Args:
            event_type: Only return events of this type.
            limit: Maximum number of events to return (from the end).
        """
        events = [e for e in self._event_log if event_type is None or e.type == event_type]
        if limit is not None:
            return events[-limit:]
        return events

    def get_handler_count(self, event_type: str) -> int:
        """Number of handlers subscribed to ``event_type``."""
        return len(self._handlers.get(event_type, ()))
