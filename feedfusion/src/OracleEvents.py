"""OracleEvents: Append-only observability signals.

Every round emits events for monitoring and alerting consumers. Events are
logged, kept in a bounded in-memory log and handed to subscribers. A
failing subscriber is logged and skipped; it never affects a round.

.. code-block:: python

    >>> log = EventLog()
    >>> seen = []
    >>> log.subscribe(seen.append)
    >>> log.emit(SourceFailed("btc", SourceKind.DISPUTE, "not implemented", 1700000000))
    >>> len(seen)
    1
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from .SourceKind import SourceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceUpdated:
    """A source observation was accepted and committed."""

    asset: str
    source: SourceKind
    price: int
    confidence: int
    timestamp: int


@dataclass(frozen=True)
class AggregateUpdated:
    """A new aggregate replaced the previous one."""

    asset: str
    price: int
    confidence: int
    sources_used: int
    timestamp: int


@dataclass(frozen=True)
class OutlierDetected:
    """An observation deviated too far from the previous aggregate."""

    asset: str
    source: SourceKind
    price: int
    reference_price: int
    deviation_bp: int
    timestamp: int


@dataclass(frozen=True)
class SourceFailed:
    """A source could not deliver an observation."""

    asset: str
    source: SourceKind
    reason: str
    timestamp: int


@dataclass(frozen=True)
class ConfigChanged:
    """An asset configuration was created or replaced."""

    asset: str
    sources: tuple[int, ...]
    heartbeat: int
    deviation_threshold: int
    active: bool
    timestamp: int


OracleEvent = SourceUpdated | AggregateUpdated | OutlierDetected | SourceFailed | ConfigChanged


class EventLog:
    """Bounded append-only event log with subscriber callbacks.

    :ivar max_events: Number of most recent events retained.
    """

    DEFAULT_MAX_EVENTS = 1000

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        self.max_events = max_events
        self._events: deque[OracleEvent] = deque(maxlen=max_events)
        self._subscribers: list[Callable[[OracleEvent], None]] = []

    def subscribe(self, callback: Callable[[OracleEvent], None]) -> None:
        """Register a callback invoked for every emitted event."""
        self._subscribers.append(callback)

    def emit(self, event: OracleEvent) -> None:
        """Append an event, log it and notify subscribers."""
        self._events.append(event)
        if isinstance(event, (OutlierDetected, SourceFailed)):
            logger.warning(f"{type(event).__name__}: {event}")
        else:
            logger.debug(f"{type(event).__name__}: {event}")

        for callback in self._subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Event subscriber {callback!r} raised {e}")

    def events(self, asset: str | None = None) -> list[OracleEvent]:
        """Get retained events, optionally filtered by asset."""
        if asset is None:
            return list(self._events)
        return [e for e in self._events if e.asset == asset]

    def __len__(self) -> int:
        return len(self._events)
