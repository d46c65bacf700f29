"""PriceValidator: Per-observation acceptance checks.

Checks run in order and stop at the first failure:
    1. price > 0
    2. confidence >= MIN_CONFIDENCE
    3. timestamp no later than now + MAX_CLOCK_SKEW, age <= asset heartbeat
    4. deviation from the previous valid aggregate <= deviation threshold

A rejection only costs the asset one source's vote for the round.

.. code-block:: python

    >>> validator = PriceValidator()
    >>> config = OracleConfig("btc", {SourceKind.REFERENCE: "0xabc"}, heartbeat=3600)
    >>> obs = PriceObservation(100, 1000, 100, SourceKind.REFERENCE)
    >>> validator.validate(config, obs, None, now=1010).accepted
    True
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from .ObservationStore import PriceObservation

if TYPE_CHECKING:
    from .AggregateStore import AggregatedPrice
    from .ConfigStore import OracleConfig

MIN_CONFIDENCE = 70
MAX_PRICE_DEVIATION = 1000  # basis points (10%)
MAX_CLOCK_SKEW = 60  # seconds an observation may be dated ahead of now


def deviation_bp(price: int, reference: int) -> int:
    """Relative difference of two prices in basis points.

    Computed as ``|price - reference| * 10000 // reference`` so no fractional
    arithmetic is involved.

    .. code-block:: python

        >>> deviation_bp(110, 100)
        1000
        >>> deviation_bp(95, 100)
        500
    """
    return abs(price - reference) * 10000 // reference


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one observation.

    :ivar observation: The observation (flagged ``outlier`` when rejected
        for deviation).
    :ivar reason: Rejection reason, or None if accepted.
    :ivar deviation_bp: Deviation from the previous aggregate, when checked.
    """

    observation: PriceObservation
    reason: str | None = None
    deviation_bp: int | None = None

    @property
    def accepted(self) -> bool:
        """Check if the observation was accepted."""
        return self.reason is None

    @property
    def is_outlier(self) -> bool:
        """Check if the observation was rejected as an outlier."""
        return self.observation.outlier


class PriceValidator:
    """Accepts or rejects single observations.

    :ivar min_confidence: Lowest acceptable per-source confidence.
    :ivar max_clock_skew: Seconds an observation may be dated in the future.
    """

    def __init__(
        self,
        min_confidence: int = MIN_CONFIDENCE,
        max_clock_skew: int = MAX_CLOCK_SKEW,
    ) -> None:
        """Initialize the validator.

        :param min_confidence: Lowest acceptable confidence (0-100).
        :param max_clock_skew: Allowed future dating in seconds (default: 60).
        :raises ValueError: If min_confidence is out of range or
            max_clock_skew is negative.
        """
        if not 0 <= min_confidence <= 100:
            raise ValueError("min_confidence must be between 0 and 100")
        if max_clock_skew < 0:
            raise ValueError("max_clock_skew must not be negative")
        self.min_confidence = min_confidence
        self.max_clock_skew = max_clock_skew

    def validate(
        self,
        config: OracleConfig,
        observation: PriceObservation,
        previous: AggregatedPrice | None,
        *,
        now: int,
    ) -> ValidationResult:
        """Validate an observation against asset config and previous aggregate.

        :param config: Asset configuration snapshot.
        :param observation: Observation to check.
        :param previous: Previous aggregate. Only a valid aggregate no older
            than the heartbeat is used as the deviation reference.
        :param now: Current unix timestamp.
        :returns: ValidationResult.
        """
        if observation.price <= 0:
            return ValidationResult(observation, f"non-positive price {observation.price}")

        if observation.confidence < self.min_confidence:
            return ValidationResult(
                observation,
                f"confidence {observation.confidence} below {self.min_confidence}",
            )

        age = observation.age(now)
        if -age > self.max_clock_skew:
            return ValidationResult(
                observation,
                f"future-dated: timestamp {-age}s ahead of now "
                f"(max skew {self.max_clock_skew}s)",
            )
        if age > config.heartbeat:
            return ValidationResult(
                observation, f"stale: age {age}s exceeds heartbeat {config.heartbeat}s"
            )

        if (
            previous is None
            or not previous.is_valid
            or previous.price <= 0
            or previous.age(now) > config.heartbeat
        ):
            return ValidationResult(observation)

        deviation = deviation_bp(observation.price, previous.price)
        if deviation > config.deviation_threshold:
            return ValidationResult(
                replace(observation, outlier=True),
                f"outlier: deviates {deviation}bp from {previous.price} "
                f"(max {config.deviation_threshold}bp)",
                deviation_bp=deviation,
            )
        return ValidationResult(observation, deviation_bp=deviation)
