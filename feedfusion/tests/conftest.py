"""Shared fixtures: a controllable adapter and a settable clock."""

import asyncio

import pytest

from feedfusion.src.adapters import AdapterError, BaseAdapter
from feedfusion.src.ObservationStore import PriceObservation
from feedfusion.src.SourceKind import SourceKind

START = 1_700_000_000


class FakeClock:
    """Callable returning a settable unix time."""

    def __init__(self, now: int = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return float(self.now)

    def advance(self, seconds: int) -> None:
        self.now += seconds


class StaticAdapter(BaseAdapter):
    """Adapter reporting a fixed price relative to a clock.

    :ivar calls: Number of fetches made.
    :ivar max_in_flight: Highest number of concurrent fetches observed.
    """

    def __init__(
        self,
        kind: SourceKind,
        clock: FakeClock,
        price: int = 100,
        confidence: int = 100,
        age: int = 10,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.kind = kind
        self.clock = clock
        self.price = price
        self.confidence = confidence
        self.age = age
        self.error = error
        self.delay = delay
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def _fetch(self, asset: str, handle: str) -> PriceObservation:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return PriceObservation(
                price=self.price,
                timestamp=self.clock.now - self.age,
                confidence=self.confidence,
                source=self.kind,
            )
        finally:
            self.in_flight -= 1


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_adapter(clock):
    """Build StaticAdapters bound to the test clock."""

    def factory(kind: SourceKind, **kwargs) -> StaticAdapter:
        return StaticAdapter(kind, clock, **kwargs)

    return factory


@pytest.fixture
def adapter_error():
    return AdapterError
