"""AggregateStore: Latest aggregated price per asset.

Each entry is a frozen :class:`AggregatedPrice`; a round replaces the whole
entry in a single assignment, so a reader sees either the previous or the
new aggregate and never a mix of both.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AggregatedPrice:
    """Result of one aggregation round.

    :ivar price: Median of the accepted prices.
    :ivar timestamp: Unix timestamp of the round.
    :ivar confidence: Derived confidence, 0-100.
    :ivar sources_used: Number of observations the median was taken over.
    :ivar is_valid: True if the aggregate may be served to consumers.
    """

    price: int
    timestamp: int
    confidence: int
    sources_used: int
    is_valid: bool

    def age(self, now: int) -> int:
        """Return the aggregate age in seconds at ``now``."""
        return now - self.timestamp


class AggregateStore:
    """Holds the single live aggregate per asset."""

    def __init__(self) -> None:
        self._aggregates: dict[str, AggregatedPrice] = {}

    def get(self, asset: str) -> AggregatedPrice | None:
        """Get the latest aggregate for an asset, or None."""
        return self._aggregates.get(asset)

    def replace(self, asset: str, aggregate: AggregatedPrice) -> AggregatedPrice | None:
        """Replace the live aggregate for an asset.

        :param asset: Asset name.
        :param aggregate: New aggregate.
        :returns: The aggregate that was replaced, if any.
        """
        previous = self._aggregates.get(asset)
        self._aggregates[asset] = aggregate
        return previous
