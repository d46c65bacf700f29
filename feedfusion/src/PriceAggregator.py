"""PriceAggregator: Median aggregation with spread-based confidence.

Algorithm:
    1. Require at least min_sources accepted observations
    2. Median of the accepted prices (floor average of the middle two for
       an even count)
    3. Confidence = mean of per-source confidences minus one point per
       penalty_bp of (max - min) / median spread, clamped to [0, 100]
    4. A spread above max_source_deviation_bp forces confidence 0 and the
       aggregate is marked invalid

.. code-block:: python

    >>> aggregator = PriceAggregator()
    >>> observations = [
    ...     PriceObservation(100, 1000, 100, SourceKind.REFERENCE),
    ...     PriceObservation(102, 1000, 100, SourceKind.ATTESTED),
    ... ]
    >>> result = aggregator.aggregate("btc", observations, now=1010)
    >>> result.price, result.confidence, result.is_valid
    (101, 98, True)
"""

from __future__ import annotations

from collections.abc import Sequence

from .AggregateStore import AggregatedPrice
from .errors import InsufficientSources
from .ObservationStore import PriceObservation

MIN_SOURCES = 2
MAX_SOURCE_DEVIATION = 500  # basis points (5%)
# One point of confidence is lost per this many basis points of spread.
CONFIDENCE_PENALTY_BP = 100


def median_price(prices: Sequence[int]) -> int:
    """Integer median of a non-empty sequence of prices.

    .. code-block:: python

        >>> median_price([3, 1, 2])
        2
        >>> median_price([100, 103])
        101
    """
    if not prices:
        raise ValueError("median of empty sequence")
    ordered = sorted(prices)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) // 2


def spread_bp(prices: Sequence[int], median: int) -> int:
    """Spread of prices around their median in basis points."""
    return (max(prices) - min(prices)) * 10000 // median


class PriceAggregator:
    """Combines a round's accepted observations into one aggregate.

    :ivar min_sources: Minimum observations required.
    :ivar max_source_deviation_bp: Largest inter-source spread allowed.
    :ivar penalty_bp: Spread in basis points that costs one confidence point.
    """

    def __init__(
        self,
        min_sources: int = MIN_SOURCES,
        max_source_deviation_bp: int = MAX_SOURCE_DEVIATION,
        penalty_bp: int = CONFIDENCE_PENALTY_BP,
    ) -> None:
        """Initialize the aggregator.

        :param min_sources: Minimum number of accepted observations.
        :param max_source_deviation_bp: Maximum spread between sources (bp).
        :param penalty_bp: Spread in bp per lost confidence point.
        :raises ValueError: If parameters are invalid.
        """
        if min_sources < 1:
            raise ValueError("min_sources must be at least 1")
        if max_source_deviation_bp <= 0:
            raise ValueError("max_source_deviation_bp must be positive")
        if penalty_bp <= 0:
            raise ValueError("penalty_bp must be positive")

        self.min_sources = min_sources
        self.max_source_deviation_bp = max_source_deviation_bp
        self.penalty_bp = penalty_bp

    def confidence(self, observations: Sequence[PriceObservation], median: int) -> int:
        """Derive the aggregate confidence from per-source confidences and spread.

        Non-increasing in spread for a fixed set of per-source confidences.

        :param observations: Accepted observations (non-empty).
        :param median: Median of their prices.
        :returns: Confidence in [0, 100].
        """
        if median <= 0:
            return 0
        prices = [o.price for o in observations]
        spread = spread_bp(prices, median)
        if spread > self.max_source_deviation_bp:
            return 0

        mean = sum(o.confidence for o in observations) // len(observations)
        penalty = -(-spread // self.penalty_bp)  # ceil
        return max(0, min(100, mean - penalty))

    def aggregate(
        self,
        asset: str,
        observations: Sequence[PriceObservation],
        *,
        now: int,
    ) -> AggregatedPrice:
        """Aggregate accepted observations into a single median price.

        :param asset: Asset name (for error context).
        :param observations: Accepted observations of this round.
        :param now: Timestamp of the round.
        :returns: AggregatedPrice; ``is_valid`` is False when sources disagree
            beyond ``max_source_deviation_bp``.
        :raises InsufficientSources: If fewer than min_sources observations.
        """
        if len(observations) < self.min_sources:
            raise InsufficientSources(len(observations), self.min_sources)

        median = median_price([o.price for o in observations])
        confidence = self.confidence(observations, median)

        return AggregatedPrice(
            price=median,
            timestamp=now,
            confidence=confidence,
            sources_used=len(observations),
            is_valid=confidence > 0,
        )
