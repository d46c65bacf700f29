"""ConfigStore: Per-asset oracle configuration.

.. code-block:: python

    >>> store = ConfigStore()
    >>> config = store.configure(
    ...     "btc", {SourceKind.REFERENCE: "0xabc"}, heartbeat=3600,
    ...     deviation_threshold=1000,
    ... )
    >>> config.enabled_sources
    [<SourceKind.REFERENCE: 1>]
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

from .errors import InvalidConfig
from .PriceValidator import MAX_PRICE_DEVIATION
from .SourceKind import SourceKind

logger = logging.getLogger(__name__)

# Deviation thresholds are expressed in basis points (10000 = 100%).
MAX_BASIS_POINTS = 10000


@dataclass(frozen=True)
class OracleConfig:
    """Configuration of a single asset.

    :ivar asset: Asset name (lowercase).
    :ivar source_handles: Feed address or identifier per enabled source.
    :ivar heartbeat: Maximum age in seconds of observations and aggregates.
    :ivar deviation_threshold: Max deviation from the previous aggregate, bp.
    :ivar active: False once the asset has been deactivated.
    """

    asset: str
    source_handles: dict[SourceKind, str] = field(default_factory=dict)
    heartbeat: int = 3600
    deviation_threshold: int = MAX_PRICE_DEVIATION
    active: bool = True

    @property
    def enabled_sources(self) -> list[SourceKind]:
        """Sources enabled for this asset, in identifier order."""
        return sorted(self.source_handles)


def normalize_asset(asset: str) -> str:
    """Normalize an asset name for use as a store key."""
    return asset.strip().lower()


def _is_whole(value) -> bool:
    """Check that a number has no fractional part (bools excluded)."""
    if isinstance(value, bool):
        return False
    try:
        return int(value) == value
    except (TypeError, ValueError, OverflowError):
        return False


class ConfigStore:
    """Maps asset names to their :class:`OracleConfig`.

    Configurations are never deleted; :meth:`deactivate` only flips the
    ``active`` flag.
    """

    def __init__(self) -> None:
        self._configs: dict[str, OracleConfig] = {}

    def configure(
        self,
        asset: str,
        source_handles: Mapping[SourceKind | int | str, str],
        heartbeat: int,
        deviation_threshold: int,
        active: bool = True,
    ) -> OracleConfig:
        """Create or replace the configuration of an asset.

        :param asset: Asset name (e.g., "btc").
        :param source_handles: Mapping of source kind to feed handle. Keys may
            be SourceKind members, their numbers or their names.
        :param heartbeat: Max age in seconds (must be positive).
        :param deviation_threshold: Max deviation in basis points (1-10000).
        :param active: Whether the asset accepts updates.
        :returns: The stored configuration.
        :raises InvalidConfig: If any parameter is invalid. No state changes.
        """
        name = normalize_asset(asset) if asset else ""
        if not name:
            raise InvalidConfig("Asset name must not be empty")
        if not _is_whole(heartbeat):
            raise InvalidConfig(
                f"Heartbeat must be a whole number of seconds, got {heartbeat!r}"
            )
        if heartbeat <= 0:
            raise InvalidConfig(f"Heartbeat must be positive, got {heartbeat}")
        if not _is_whole(deviation_threshold):
            raise InvalidConfig(
                f"Deviation threshold must be a whole number of basis points, "
                f"got {deviation_threshold!r}"
            )
        if deviation_threshold <= 0:
            raise InvalidConfig(
                f"Deviation threshold must be positive, got {deviation_threshold}"
            )
        if deviation_threshold > MAX_BASIS_POINTS:
            raise InvalidConfig(
                f"Deviation threshold must not exceed {MAX_BASIS_POINTS}bp, "
                f"got {deviation_threshold}"
            )

        handles: dict[SourceKind, str] = {}
        for key, handle in source_handles.items():
            try:
                kind = key if isinstance(key, SourceKind) else SourceKind.from_string(str(key))
            except ValueError as e:
                raise InvalidConfig(str(e)) from e
            handles[kind] = handle

        config = OracleConfig(
            asset=name,
            source_handles=handles,
            heartbeat=int(heartbeat),
            deviation_threshold=int(deviation_threshold),
            active=active,
        )
        self._configs[name] = config
        logger.info(
            f"{name}: configured sources={[k.label for k in config.enabled_sources]}, "
            f"heartbeat={config.heartbeat}s, deviation={config.deviation_threshold}bp, "
            f"active={config.active}"
        )
        return config

    def deactivate(self, asset: str) -> OracleConfig:
        """Mark an asset inactive, keeping the rest of its configuration.

        :raises InvalidConfig: If the asset has never been configured.
        """
        name = normalize_asset(asset)
        config = self._configs.get(name)
        if config is None:
            raise InvalidConfig(f"Asset {name!r} is not configured")
        config = replace(config, active=False)
        self._configs[name] = config
        logger.info(f"{name}: deactivated")
        return config

    def get(self, asset: str) -> OracleConfig | None:
        """Get the configuration of an asset, or None."""
        return self._configs.get(normalize_asset(asset))

    def assets(self) -> list[str]:
        """Get all configured asset names."""
        return list(self._configs)

    def active_assets(self) -> list[str]:
        """Get configured assets that accept updates."""
        return [name for name, config in self._configs.items() if config.active]
