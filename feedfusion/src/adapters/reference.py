"""Pull-based reference feed adapter.

Reads ``latestRoundData()`` from an AggregatorV3-style feed contract.
Handle: feed contract address (e.g., "0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419").

Round completeness: the answered round must be at least as recent as the
latest requested round, and the round must carry an update timestamp.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from ..ContractUtility import ContractUtility
from ..ObservationStore import PriceObservation
from ..SourceKind import SourceKind
from .base import AdapterConfigError, AdapterError, BaseAdapter, register_adapter, scale_price

logger = logging.getLogger(__name__)

# Confidence by observation age: (max age exclusive, confidence).
CONFIDENCE_TIERS: tuple[tuple[int, int], ...] = (
    (3600, 100),
    (7200, 80),
)
STALE_CONFIDENCE = 60


def confidence_for_age(age: int) -> int:
    """Map an observation age in seconds to a confidence score.

    .. code-block:: python

        >>> confidence_for_age(10)
        100
        >>> confidence_for_age(5400)
        80
        >>> confidence_for_age(9000)
        60
    """
    for max_age, confidence in CONFIDENCE_TIERS:
        if age < max_age:
            return confidence
    return STALE_CONFIDENCE


@register_adapter
class ReferenceFeedAdapter(BaseAdapter):
    """Adapter for on-chain AggregatorV3 reference feeds.

    Contract calls are blocking web3 calls and run in a worker thread.
    Feed decimals are read once per address and cached.
    """

    kind = SourceKind.REFERENCE

    def __init__(
        self,
        rpc_url: str | None = None,
        contract_utility: ContractUtility | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the adapter.

        :param rpc_url: RPC endpoint for the chain hosting the feeds.
        :param contract_utility: Pre-built utility (overrides ``rpc_url``).
        :param timeout: Request timeout in seconds.
        :param clock: Returns the current unix time; round age is measured
            against it.
        """
        super().__init__(timeout=timeout)
        self.clock = clock
        self._rpc_url = rpc_url
        self._contract_utility = contract_utility
        self._decimals: dict[str, int] = {}

    @property
    def contract_utility(self) -> ContractUtility:
        """Lazily created web3 utility."""
        if self._contract_utility is None:
            self._contract_utility = ContractUtility(self._rpc_url)
        return self._contract_utility

    async def _fetch(self, asset: str, handle: str) -> PriceObservation:
        try:
            contract = self.contract_utility.reference_feed(handle)
        except (ValueError, TypeError) as e:
            raise AdapterConfigError(f"Invalid feed address {handle!r}: {e}") from e

        return await asyncio.to_thread(self._read_round, contract, handle)

    def _read_round(self, contract, handle: str) -> PriceObservation:
        """Read and check the latest round of a feed contract."""
        try:
            decimals = self._decimals.get(handle)
            if decimals is None:
                decimals = int(contract.functions.decimals().call())
                self._decimals[handle] = decimals
            round_id, answer, _started_at, updated_at, answered_in_round = (
                contract.functions.latestRoundData().call()
            )
        except Exception as e:
            raise AdapterError(f"Round data unavailable: {e}") from e

        if updated_at == 0:
            raise AdapterError(f"Round {round_id} is incomplete")
        if answered_in_round < round_id:
            raise AdapterError(
                f"Stale round: answered in {answered_in_round}, latest {round_id}"
            )
        if answer <= 0:
            raise AdapterError(f"Non-positive answer {answer}")

        age = max(0, int(self.clock()) - int(updated_at))
        return PriceObservation(
            price=scale_price(int(answer), decimals),
            timestamp=int(updated_at),
            confidence=confidence_for_age(age),
            source=self.kind,
        )
