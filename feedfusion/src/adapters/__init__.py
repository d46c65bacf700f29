"""
Source adapters for the four supported feed variants.

This module provides a unified interface for fetching one price observation
for one asset from one source.

Usage:
    from feedfusion.src.adapters import build_adapters, SourceKind

    adapters = build_adapters(rpc_url="https://eth.llamarpc.com")
    result = await adapters[SourceKind.REFERENCE].fetch("btc", "0x5f4e...")
    # PriceObservation(...) or SourceFailure(source=..., reason=...)
"""

import time
from collections.abc import Callable

# Import base classes and utilities
from ..SourceKind import SourceKind
from .base import (
    ADAPTER_REGISTRY,
    PRICE_DECIMALS,
    AdapterConfigError,
    AdapterError,
    AdapterHTTPError,
    BaseAdapter,
    FetchResult,
    SourceFailure,
    get_adapter,
    get_available_adapters,
    register_adapter,
    scale_price,
)

# Import all adapter implementations to trigger registration
from .attested import AttestedFeedAdapter
from .dispute import DisputeFeedAdapter
from .reference import ReferenceFeedAdapter
from .request import RequestFeedAdapter


def build_adapters(
    rpc_url: str | None = None,
    attested_endpoint: str | None = None,
    timeout: float | None = None,
    clock: Callable[[], float] = time.time,
) -> dict[SourceKind, BaseAdapter]:
    """Create one adapter instance per registered source kind.

    :param rpc_url: RPC endpoint for reference feeds.
    :param attested_endpoint: Base URL of the attested price service.
    :param timeout: Request timeout in seconds.
    :param clock: Clock for adapters that grade confidence by age.
    :returns: Dict mapping source kind to adapter.
    """
    options: dict[SourceKind, dict] = {
        SourceKind.REFERENCE: {"rpc_url": rpc_url, "clock": clock},
        SourceKind.ATTESTED: {"endpoint": attested_endpoint},
    }
    return {
        kind: get_adapter(kind, timeout=timeout, **options.get(kind, {}))
        for kind in get_available_adapters()
    }


__all__ = [
    # Base classes
    "BaseAdapter",
    "AdapterError",
    "AdapterConfigError",
    "AdapterHTTPError",
    "FetchResult",
    "SourceFailure",
    "SourceKind",
    "PRICE_DECIMALS",
    "scale_price",
    # Registry functions
    "register_adapter",
    "get_adapter",
    "get_available_adapters",
    "build_adapters",
    "ADAPTER_REGISTRY",
    # Adapter implementations
    "AttestedFeedAdapter",
    "DisputeFeedAdapter",
    "ReferenceFeedAdapter",
    "RequestFeedAdapter",
]
