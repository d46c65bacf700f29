"""ObservationStore: Latest accepted observation per (asset, source).

Observations are immutable. A newer observation for the same asset and
source replaces the stored one; nothing is merged and no history is kept.
"""

from __future__ import annotations

from dataclasses import dataclass

from .SourceKind import SourceKind


@dataclass(frozen=True)
class PriceObservation:
    """One source's reported price for one asset in one round.

    :ivar price: Fixed-point price (``PRICE_DECIMALS`` scale).
    :ivar timestamp: Unix timestamp the source reported the price at.
    :ivar confidence: Per-source confidence, 0-100.
    :ivar source: Source the observation came from.
    :ivar outlier: True if the observation deviated too far from the
        previous aggregate.
    """

    price: int
    timestamp: int
    confidence: int
    source: SourceKind
    outlier: bool = False

    def age(self, now: int) -> int:
        """Return the observation age in seconds at ``now``."""
        return now - self.timestamp


class ObservationStore:
    """Holds the latest accepted observation for each (asset, source)."""

    def __init__(self) -> None:
        self._observations: dict[str, dict[SourceKind, PriceObservation]] = {}

    def record_round(self, asset: str, observations: list[PriceObservation]) -> None:
        """Store all observations of a committed round."""
        # Build a new mapping and swap it in so readers see a whole round.
        latest = dict(self._observations.get(asset, {}))
        for observation in observations:
            latest[observation.source] = observation
        self._observations[asset] = latest

    def get(self, asset: str, source: SourceKind) -> PriceObservation | None:
        """Get the latest observation for a source, or None."""
        return self._observations.get(asset, {}).get(source)
