"""
feedfusion - Multi-Source Price Aggregation Module

This module provides fault-tolerant price aggregation from independent sources:
- SourceKind: Identifiers of the four source variants
- adapters: Per-source fetch implementations with isolated failures
- FetchCoordinator: Concurrent fan-out with per-source timeouts
- PriceValidator: Staleness, confidence and outlier checks
- PriceAggregator: Median price with spread-based confidence
- ConfigStore, ObservationStore, AggregateStore: Per-asset state
- PriceOracle: Main orchestrator for update rounds and price reads
"""

from .AggregateStore import AggregatedPrice, AggregateStore
from .ConfigStore import ConfigStore, OracleConfig
from .errors import (
    InsufficientSources,
    InvalidConfig,
    NoValidPrice,
    OracleError,
    OracleInactive,
    SourceDisagreement,
    StalePrice,
)
from .FetchCoordinator import FetchCoordinator
from .ObservationStore import ObservationStore, PriceObservation
from .OracleEvents import EventLog
from .PriceAggregator import MAX_SOURCE_DEVIATION, MIN_SOURCES, PriceAggregator
from .PriceOracle import PriceOracle
from .PriceValidator import MAX_PRICE_DEVIATION, MIN_CONFIDENCE, PriceValidator
from .SourceKind import SourceKind

__all__ = [
    "AggregatedPrice",
    "AggregateStore",
    "ConfigStore",
    "EventLog",
    "FetchCoordinator",
    "InsufficientSources",
    "InvalidConfig",
    "MAX_PRICE_DEVIATION",
    "MAX_SOURCE_DEVIATION",
    "MIN_CONFIDENCE",
    "MIN_SOURCES",
    "NoValidPrice",
    "ObservationStore",
    "OracleConfig",
    "OracleError",
    "OracleInactive",
    "PriceAggregator",
    "PriceObservation",
    "PriceOracle",
    "PriceValidator",
    "SourceDisagreement",
    "SourceKind",
    "StalePrice",
]
