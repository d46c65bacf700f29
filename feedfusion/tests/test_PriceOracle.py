"""Tests for PriceOracle rounds and price reads."""

import asyncio

import pytest

from feedfusion.src.adapters import DisputeFeedAdapter, RequestFeedAdapter
from feedfusion.src.errors import (
    InsufficientSources,
    InvalidConfig,
    NoValidPrice,
    OracleInactive,
    SourceDisagreement,
    StalePrice,
)
from feedfusion.src.OracleEvents import (
    AggregateUpdated,
    ConfigChanged,
    OutlierDetected,
    SourceFailed,
    SourceUpdated,
)
from feedfusion.src.PriceOracle import PriceOracle
from feedfusion.src.SourceKind import SourceKind

REF, ATT, REQ, DIS = SourceKind
HANDLES = {REF: "0xref", ATT: "0xatt"}


@pytest.fixture
def adapters(make_adapter):
    return {
        REF: make_adapter(REF, price=100),
        ATT: make_adapter(ATT, price=102),
        REQ: RequestFeedAdapter(),
        DIS: DisputeFeedAdapter(),
    }


@pytest.fixture
def oracle(adapters, clock) -> PriceOracle:
    oracle = PriceOracle(adapters, clock=clock, fetch_timeout=0.5)
    oracle.configure_asset("BTC", HANDLES, heartbeat=3600, deviation_threshold=1000)
    return oracle


class TestConfigureAsset:
    """Test administrative configuration."""

    def test_emits_config_changed(self, oracle, clock) -> None:
        """Configuration emits a ConfigChanged signal."""
        (event,) = oracle.events.events("btc")
        assert event == ConfigChanged(
            asset="btc",
            sources=(1, 2),
            heartbeat=3600,
            deviation_threshold=1000,
            active=True,
            timestamp=clock.now,
        )

    def test_invalid_config(self, oracle) -> None:
        """Invalid configuration changes nothing."""
        with pytest.raises(InvalidConfig):
            oracle.configure_asset("btc", HANDLES, heartbeat=0)
        assert oracle.get_config("btc").heartbeat == 3600
        assert len(oracle.events) == 1


class TestUpdatePrices:
    """Test a full fetch, validate and aggregate round."""

    @pytest.mark.asyncio
    async def test_two_source_scenario(self, oracle, clock) -> None:
        """100 and 102 aggregate to 101 with confidence 98."""
        aggregate = await oracle.update_prices("btc")

        assert aggregate.price == 101
        assert aggregate.confidence == 98
        assert aggregate.sources_used == 2
        assert aggregate.timestamp == clock.now
        assert aggregate.is_valid
        assert oracle.get_latest_price("btc") == (101, clock.now, 98)

    @pytest.mark.asyncio
    async def test_commits_observations_and_events(self, oracle, clock) -> None:
        """Accepted observations are stored and signalled."""
        await oracle.update_prices("btc")

        assert oracle.get_observation("btc", REF).price == 100
        assert oracle.get_observation("btc", ATT).price == 102
        events = oracle.events.events("btc")
        assert [e.source for e in events if isinstance(e, SourceUpdated)] == [REF, ATT]
        assert [e.price for e in events if isinstance(e, AggregateUpdated)] == [101]

    @pytest.mark.asyncio
    async def test_outlier_scenario(self, oracle, adapters) -> None:
        """A source 30% away from the previous aggregate is dropped; round aborts."""
        adapters[ATT].price = 101
        first = await oracle.update_prices("btc")
        assert first.price == 100

        adapters[ATT].price = 130
        with pytest.raises(InsufficientSources) as exc_info:
            await oracle.update_prices("btc")

        assert exc_info.value.available == 1
        assert exc_info.value.required == 2
        assert oracle.aggregate_store.get("btc") == first
        assert oracle.get_observation("btc", ATT).price == 101
        (outlier,) = [e for e in oracle.events.events() if isinstance(e, OutlierDetected)]
        assert outlier.source == ATT
        assert outlier.price == 130
        assert outlier.reference_price == 100
        assert outlier.deviation_bp == 3000

    @pytest.mark.asyncio
    async def test_single_source_always_insufficient(self, oracle, adapters) -> None:
        """One accepted observation aborts even at full confidence."""
        oracle.configure_asset("btc", {REF: "0xref"}, heartbeat=3600)
        with pytest.raises(InsufficientSources):
            await oracle.update_prices("btc")
        assert oracle.aggregate_store.get("btc") is None

    @pytest.mark.asyncio
    async def test_stale_observation_excluded(self, oracle, adapters, make_adapter) -> None:
        """An observation older than the heartbeat never reaches aggregation."""
        adapters[REF].age = 3601
        with pytest.raises(InsufficientSources):
            await oracle.update_prices("btc")

        oracle.configure_asset("btc", {REF: "a", ATT: "b", REQ: "c"}, heartbeat=3600)
        adapters[REQ] = make_adapter(REQ, price=104)
        aggregate = await oracle.update_prices("btc")
        assert aggregate.price == 103
        assert aggregate.sources_used == 2
        assert oracle.get_observation("btc", REF) is None

    @pytest.mark.asyncio
    async def test_future_dated_observations_excluded(self, oracle, adapters) -> None:
        """Observations dated far ahead of the clock never commit an aggregate."""
        adapters[REF].age = -10**6
        adapters[ATT].age = -10**6
        with pytest.raises(InsufficientSources) as exc_info:
            await oracle.update_prices("btc")

        assert exc_info.value.available == 0
        assert oracle.aggregate_store.get("btc") is None

    @pytest.mark.asyncio
    async def test_low_confidence_excluded(self, oracle, adapters) -> None:
        """Sources below minimum confidence lose their vote."""
        adapters[ATT].confidence = 60
        with pytest.raises(InsufficientSources):
            await oracle.update_prices("btc")

    @pytest.mark.asyncio
    async def test_disagreement_aborts(self, oracle, adapters) -> None:
        """Sources more than 5% apart abort the round without state change."""
        adapters[ATT].price = 106
        with pytest.raises(SourceDisagreement) as exc_info:
            await oracle.update_prices("btc")

        assert exc_info.value.spread_bp > exc_info.value.max_spread_bp == 500
        assert oracle.aggregate_store.get("btc") is None
        assert oracle.get_observation("btc", REF) is None

    @pytest.mark.asyncio
    async def test_idempotent(self, oracle) -> None:
        """Unchanged sources give the same median and confidence."""
        first = await oracle.update_prices("btc")
        second = await oracle.update_prices("btc")

        assert (first.price, first.confidence) == (second.price, second.confidence)

    @pytest.mark.asyncio
    async def test_failures_isolated(self, oracle, adapters, make_adapter) -> None:
        """Failing and hanging sources are excluded while the round commits."""
        adapters[REQ] = make_adapter(REQ, error=RuntimeError("crash"))
        adapters[DIS] = make_adapter(DIS, delay=5.0)
        oracle.configure_asset("btc", {REF: "a", ATT: "b", REQ: "c", DIS: "d"}, heartbeat=3600)

        aggregate = await oracle.update_prices("btc")

        assert aggregate.price == 101
        failed = [e for e in oracle.events.events() if isinstance(e, SourceFailed)]
        assert {e.source for e in failed} == {REQ, DIS}

    @pytest.mark.asyncio
    async def test_stub_sources_fail_closed(self, oracle) -> None:
        """Request and dispute feeds only contribute failure signals."""
        oracle.configure_asset("btc", {REF: "a", ATT: "b", REQ: "c", DIS: "d"}, heartbeat=3600)
        aggregate = await oracle.update_prices("btc")

        assert aggregate.sources_used == 2
        failed = [e for e in oracle.events.events() if isinstance(e, SourceFailed)]
        assert all("not implemented" in e.reason for e in failed)
        assert oracle.get_observation("btc", REQ) is None

    @pytest.mark.asyncio
    async def test_unconfigured_asset(self, oracle, adapters) -> None:
        """Unknown assets are rejected before any fetch."""
        with pytest.raises(OracleInactive):
            await oracle.update_prices("eth")
        assert adapters[REF].calls == 0

    @pytest.mark.asyncio
    async def test_inactive_asset(self, oracle, adapters) -> None:
        """Deactivated assets are rejected before any fetch."""
        oracle.deactivate_asset("btc")
        with pytest.raises(OracleInactive):
            await oracle.update_prices("btc")
        assert adapters[REF].calls == 0


class TestGetLatestPrice:
    """Test reading the latest aggregate."""

    def test_no_aggregate(self, oracle) -> None:
        """No round yet means no valid price."""
        with pytest.raises(NoValidPrice):
            oracle.get_latest_price("btc")

    def test_unknown_asset(self, oracle) -> None:
        with pytest.raises(NoValidPrice):
            oracle.get_latest_price("doge")

    @pytest.mark.asyncio
    async def test_stale_aggregate(self, oracle, clock) -> None:
        """An aggregate older than the heartbeat is refused but kept."""
        aggregate = await oracle.update_prices("btc")
        clock.advance(3600)
        assert oracle.get_latest_price("btc")[0] == 101

        clock.advance(1)
        with pytest.raises(StalePrice) as exc_info:
            oracle.get_latest_price("btc")

        assert exc_info.value.timestamp == aggregate.timestamp
        assert exc_info.value.max_age == 3600
        assert oracle.aggregate_store.get("btc") == aggregate


class TestConcurrency:
    """Test serialisation of rounds and non-blocking reads."""

    @pytest.mark.asyncio
    async def test_rounds_for_same_asset_serialised(self, oracle, adapters) -> None:
        """Concurrent rounds of one asset never overlap."""
        adapters[REF].delay = 0.05
        adapters[ATT].delay = 0.05

        results = await asyncio.gather(*(oracle.update_prices("btc") for _ in range(3)))

        assert [r.price for r in results] == [101, 101, 101]
        assert adapters[REF].max_in_flight == 1
        assert adapters[REF].calls == 3

    @pytest.mark.asyncio
    async def test_rounds_for_different_assets_overlap(self, oracle, adapters) -> None:
        """Locks are per asset, not global."""
        adapters[REF].delay = 0.05
        oracle.configure_asset("eth", HANDLES, heartbeat=3600)

        await asyncio.gather(oracle.update_prices("btc"), oracle.update_prices("eth"))

        assert adapters[REF].max_in_flight == 2

    @pytest.mark.asyncio
    async def test_read_during_round_sees_previous(self, oracle, adapters, clock) -> None:
        """A read while a round is in flight returns the committed aggregate."""
        await oracle.update_prices("btc")
        adapters[ATT].price = 104
        adapters[REF].delay = 0.05

        task = asyncio.create_task(oracle.update_prices("btc"))
        await asyncio.sleep(0.01)
        assert oracle.get_latest_price("btc")[0] == 101

        await task
        assert oracle.get_latest_price("btc")[0] == 102


class TestUpdateAll:
    """Test the multi-asset round used by the service loop."""

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_other_assets(self, oracle, adapters) -> None:
        """A failing asset is reported while the others commit."""
        oracle.configure_asset("eth", {REF: "0xref"}, heartbeat=3600)
        oracle.configure_asset("sol", HANDLES, heartbeat=3600, active=False)

        outcome = await oracle.update_all()

        assert set(outcome) == {"btc", "eth"}
        assert outcome["btc"].price == 101
        assert isinstance(outcome["eth"], InsufficientSources)
