"""Typed errors surfaced by the oracle core.

Source-level problems never escape the fetch fan-out (see
:mod:`feedfusion.src.adapters.base`); everything here is raised to the caller
of :class:`~feedfusion.src.PriceOracle.PriceOracle`.
"""


class OracleError(Exception):
    """Base exception for oracle errors."""

    pass


class InvalidConfig(OracleError):
    """Raised when an asset configuration is rejected."""

    pass


class OracleInactive(OracleError):
    """Raised when an asset is not configured or has been deactivated.

    :ivar asset: Asset the operation was attempted for.
    """

    def __init__(self, asset: str):
        self.asset = asset
        super().__init__(f"Oracle for {asset!r} is not configured or inactive")


class InsufficientSources(OracleError):
    """Raised when too few observations survive validation.

    :ivar available: Number of accepted observations.
    :ivar required: Minimum needed for a valid aggregate.
    """

    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient sources: {available} available, {required} required"
        )


class SourceDisagreement(OracleError):
    """Raised when accepted sources spread further apart than allowed.

    :ivar spread_bp: Observed (max - min) / median spread in basis points.
    :ivar max_spread_bp: Allowed inter-source spread in basis points.
    """

    def __init__(self, spread_bp: int, max_spread_bp: int):
        self.spread_bp = spread_bp
        self.max_spread_bp = max_spread_bp
        super().__init__(
            f"Sources disagree by {spread_bp}bp (max {max_spread_bp}bp)"
        )


class NoValidPrice(OracleError):
    """Raised when no valid aggregate exists for an asset."""

    pass


class StalePrice(OracleError):
    """Raised when the latest aggregate is older than the asset heartbeat.

    :ivar timestamp: Timestamp of the stored aggregate.
    :ivar max_age: Heartbeat of the asset in seconds.
    """

    def __init__(self, timestamp: int, max_age: int):
        self.timestamp = timestamp
        self.max_age = max_age
        super().__init__(f"Price from {timestamp} is older than {max_age}s")
