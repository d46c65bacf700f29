"""PriceOracle: Main orchestrator for multi-source aggregated prices.

This module fetches observations from every enabled source of an asset,
validates them, aggregates the survivors via median and publishes the
result as the asset's latest aggregate.

Architecture:
    - Per-asset configuration in ConfigStore
    - Concurrent per-source fetches through FetchCoordinator
    - PriceValidator drops stale, low-confidence and outlier observations
    - PriceAggregator computes the median and its confidence
    - A round commits its observations and aggregate together, or nothing
    - Rounds of one asset are serialised by a per-asset lock; reads of the
      latest aggregate never wait on a round
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping

from .adapters import BaseAdapter, SourceFailure, build_adapters
from .AggregateStore import AggregatedPrice, AggregateStore
from .ConfigStore import ConfigStore, OracleConfig, normalize_asset
from .errors import (
    InsufficientSources,
    NoValidPrice,
    OracleError,
    OracleInactive,
    SourceDisagreement,
    StalePrice,
)
from .FetchCoordinator import FetchCoordinator
from .ObservationStore import ObservationStore, PriceObservation
from .OracleEvents import (
    AggregateUpdated,
    ConfigChanged,
    EventLog,
    OutlierDetected,
    SourceFailed,
    SourceUpdated,
)
from .PriceAggregator import MAX_SOURCE_DEVIATION, MIN_SOURCES, PriceAggregator, spread_bp
from .PriceValidator import MAX_PRICE_DEVIATION, MIN_CONFIDENCE, PriceValidator
from .SourceKind import SourceKind

logger = logging.getLogger(__name__)


class PriceOracle:
    """Main orchestrator for aggregated price feeds.

    :ivar config_store: Per-asset configuration.
    :ivar observation_store: Latest committed observation per source.
    :ivar aggregate_store: Latest aggregate per asset.
    :ivar events: Observability event log.
    :ivar update_period: Seconds between rounds in :meth:`run`.
    """

    def __init__(
        self,
        adapters: dict[SourceKind, BaseAdapter] | None = None,
        *,
        rpc_url: str | None = None,
        attested_endpoint: str | None = None,
        fetch_timeout: float = 10.0,
        update_period: int = 60,
        min_sources: int = MIN_SOURCES,
        min_confidence: int = MIN_CONFIDENCE,
        max_source_deviation_bp: int = MAX_SOURCE_DEVIATION,
        events: EventLog | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the price oracle.

        :param adapters: Source adapters by kind. Built from ``rpc_url`` and
            ``attested_endpoint`` when omitted.
        :param rpc_url: RPC endpoint for reference feeds.
        :param attested_endpoint: Base URL of the attested price service.
        :param fetch_timeout: Timeout for each source fetch (default: 10.0).
        :param update_period: Seconds between rounds in run() (default: 60).
        :param min_sources: Minimum accepted observations per round (default: 2).
        :param min_confidence: Minimum per-source confidence (default: 70).
        :param max_source_deviation_bp: Max inter-source spread (default: 500).
        :param events: Event log receiving observability signals.
        :param clock: Returns the current unix time.
        """
        if adapters is None:
            adapters = build_adapters(
                rpc_url=rpc_url,
                attested_endpoint=attested_endpoint,
                timeout=fetch_timeout,
                clock=clock,
            )
        self.adapters = adapters
        self.update_period = max(1, update_period)
        self.clock = clock

        self.config_store = ConfigStore()
        self.observation_store = ObservationStore()
        self.aggregate_store = AggregateStore()
        self.events = events if events is not None else EventLog()

        self.fetch_coordinator = FetchCoordinator(adapters, fetch_timeout=fetch_timeout)
        self.validator = PriceValidator(min_confidence=min_confidence)
        self.aggregator = PriceAggregator(
            min_sources=min_sources,
            max_source_deviation_bp=max_source_deviation_bp,
        )

        self._locks: dict[str, asyncio.Lock] = {}

        logger.info(
            f"PriceOracle initialized: adapters={[k.label for k in sorted(adapters)]}, "
            f"min_sources={min_sources}, min_confidence={min_confidence}, "
            f"max_source_deviation={max_source_deviation_bp}bp"
        )

    def _now(self) -> int:
        return int(self.clock())

    def _lock_for(self, asset: str) -> asyncio.Lock:
        return self._locks.setdefault(asset, asyncio.Lock())

    def configure_asset(
        self,
        asset: str,
        source_handles: Mapping[SourceKind | int | str, str],
        heartbeat: int,
        deviation_threshold: int = MAX_PRICE_DEVIATION,
        active: bool = True,
    ) -> OracleConfig:
        """Create or replace the configuration of an asset.

        :param asset: Asset name (e.g., "btc").
        :param source_handles: Feed handle per enabled source.
        :param heartbeat: Max age in seconds of observations and aggregates.
        :param deviation_threshold: Max deviation from previous aggregate (bp).
        :param active: Whether the asset accepts updates.
        :returns: Stored configuration.
        :raises InvalidConfig: If the configuration is rejected.
        """
        config = self.config_store.configure(
            asset, source_handles, heartbeat, deviation_threshold, active
        )
        self._emit_config_changed(config)
        return config

    def deactivate_asset(self, asset: str) -> OracleConfig:
        """Stop accepting updates for an asset.

        :raises InvalidConfig: If the asset has never been configured.
        """
        config = self.config_store.deactivate(asset)
        self._emit_config_changed(config)
        return config

    def _emit_config_changed(self, config: OracleConfig) -> None:
        self.events.emit(
            ConfigChanged(
                asset=config.asset,
                sources=tuple(int(k) for k in config.enabled_sources),
                heartbeat=config.heartbeat,
                deviation_threshold=config.deviation_threshold,
                active=config.active,
                timestamp=self._now(),
            )
        )

    def get_config(self, asset: str) -> OracleConfig | None:
        """Get the configuration of an asset, or None."""
        return self.config_store.get(asset)

    def get_observation(self, asset: str, source: SourceKind) -> PriceObservation | None:
        """Get the latest committed observation of one source, or None."""
        return self.observation_store.get(normalize_asset(asset), source)

    def get_latest_price(self, asset: str) -> tuple[int, int, int]:
        """Get the latest aggregated price of an asset.

        Never waits for an in-flight round.

        :param asset: Asset name.
        :returns: Tuple of (price, timestamp, confidence).
        :raises NoValidPrice: If no valid aggregate exists.
        :raises StalePrice: If the aggregate is older than the heartbeat.
        """
        name = normalize_asset(asset)
        aggregate = self.aggregate_store.get(name)
        config = self.config_store.get(name)
        if aggregate is None or not aggregate.is_valid or config is None:
            raise NoValidPrice(f"No valid price for {name!r}")

        if aggregate.age(self._now()) > config.heartbeat:
            raise StalePrice(aggregate.timestamp, config.heartbeat)

        return aggregate.price, aggregate.timestamp, aggregate.confidence

    async def update_prices(self, asset: str) -> AggregatedPrice:
        """Run one fetch, validate and aggregate round for an asset.

        :param asset: Asset name.
        :returns: The newly committed aggregate.
        :raises OracleInactive: If the asset is not configured or inactive.
        :raises InsufficientSources: If too few observations pass validation.
        :raises SourceDisagreement: If accepted sources spread too far apart.
        """
        name = normalize_asset(asset)
        config = self.config_store.get(name)
        if config is None or not config.active:
            raise OracleInactive(name)

        async with self._lock_for(name):
            # Snapshot under the lock so the round sees one config and one
            # previous aggregate.
            config = self.config_store.get(name)
            if config is None or not config.active:
                raise OracleInactive(name)
            previous = self.aggregate_store.get(name)

            results = await self.fetch_coordinator.fetch_all(config)
            now = self._now()
            accepted = self._validate_results(config, results, previous, now)

            try:
                aggregate = self.aggregator.aggregate(name, accepted, now=now)
            except InsufficientSources as e:
                logger.warning(f"{name}: Aggregation failed: {e}")
                raise

            if not aggregate.is_valid:
                spread = spread_bp([o.price for o in accepted], aggregate.price)
                if spread > self.aggregator.max_source_deviation_bp:
                    logger.warning(
                        f"{name}: Sources disagree by {spread}bp: "
                        f"{self._format_observations(accepted)}"
                    )
                    raise SourceDisagreement(spread, self.aggregator.max_source_deviation_bp)
                raise NoValidPrice(f"Aggregate confidence for {name!r} is zero")

            self.observation_store.record_round(name, accepted)
            self.aggregate_store.replace(name, aggregate)

        for observation in accepted:
            self.events.emit(
                SourceUpdated(
                    asset=name,
                    source=observation.source,
                    price=observation.price,
                    confidence=observation.confidence,
                    timestamp=observation.timestamp,
                )
            )
        self.events.emit(
            AggregateUpdated(
                asset=name,
                price=aggregate.price,
                confidence=aggregate.confidence,
                sources_used=aggregate.sources_used,
                timestamp=aggregate.timestamp,
            )
        )
        logger.info(
            f"{name}: {aggregate.price} (median of [{self._format_observations(accepted)}], "
            f"confidence={aggregate.confidence})"
        )
        return aggregate

    def _validate_results(
        self,
        config: OracleConfig,
        results: Mapping[SourceKind, PriceObservation | SourceFailure],
        previous: AggregatedPrice | None,
        now: int,
    ) -> list[PriceObservation]:
        """Validate fetch results, emitting failure and outlier signals.

        :returns: Accepted observations in source order.
        """
        accepted: list[PriceObservation] = []
        for source in sorted(results):
            result = results[source]
            if isinstance(result, SourceFailure):
                self.events.emit(SourceFailed(config.asset, source, result.reason, now))
                continue

            validation = self.validator.validate(config, result, previous, now=now)
            if validation.accepted:
                accepted.append(result)
            elif validation.is_outlier:
                assert previous is not None and validation.deviation_bp is not None
                self.events.emit(
                    OutlierDetected(
                        asset=config.asset,
                        source=source,
                        price=result.price,
                        reference_price=previous.price,
                        deviation_bp=validation.deviation_bp,
                        timestamp=now,
                    )
                )
            else:
                logger.info(f"[{source.label}] {config.asset}: rejected ({validation.reason})")
        return accepted

    @staticmethod
    def _format_observations(observations: list[PriceObservation]) -> str:
        return ", ".join(
            f"{o.source.label}={o.price}@{o.confidence}" for o in observations
        )

    async def update_all(self) -> dict[str, AggregatedPrice | OracleError]:
        """Run one round for every active asset concurrently.

        Oracle errors are logged and returned per asset; they never stop the
        other assets.

        :returns: Dict mapping asset name to its aggregate or error.
        """
        assets = self.config_store.active_assets()
        results = await asyncio.gather(
            *(self.update_prices(asset) for asset in assets),
            return_exceptions=True,
        )

        outcome: dict[str, AggregatedPrice | OracleError] = {}
        for asset, result in zip(assets, results, strict=True):
            if isinstance(result, OracleError):
                logger.warning(f"{asset}: Round aborted: {result}")
            elif isinstance(result, BaseException):
                raise result
            outcome[asset] = result
        return outcome

    async def run(self) -> None:
        """Run rounds for all active assets every update_period seconds."""
        logger.info(
            f"Starting update loop for {self.config_store.active_assets()} "
            f"every {self.update_period}s"
        )
        try:
            while True:
                await self.update_all()
                await asyncio.sleep(self.update_period)
        finally:
            # Clean up shared HTTP client
            await BaseAdapter.close_shared_client()
