"""Push/attested feed adapter.

Reads the latest attested price update from a Hermes-style price service.
Handle: hex feed id (e.g., "0xe62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43").

Endpoint: {endpoint}/v2/updates/price/latest?ids[]={id}&parsed=true
Response: {"parsed": [{"id": ..., "price": {"price": "6512345678",
          "conf": "1234", "expo": -8, "publish_time": 1700000000}}]}

Attested updates are fresh at receipt time, so the confidence is fixed.
Signatures in the binary payload are not verified here.
"""

import logging

from ..ObservationStore import PriceObservation
from ..SourceKind import SourceKind
from .base import AdapterError, BaseAdapter, register_adapter, scale_price

logger = logging.getLogger(__name__)

ATTESTED_CONFIDENCE = 90


@register_adapter
class AttestedFeedAdapter(BaseAdapter):
    """Adapter for push-based attested price feeds."""

    kind = SourceKind.ATTESTED
    DEFAULT_ENDPOINT = "https://hermes.pyth.network"

    def __init__(self, endpoint: str | None = None, timeout: float | None = None) -> None:
        """Initialize the adapter.

        :param endpoint: Base URL of the price service.
        :param timeout: Request timeout in seconds.
        """
        super().__init__(timeout=timeout)
        self.endpoint = (endpoint or self.DEFAULT_ENDPOINT).rstrip("/")

    async def _fetch(self, asset: str, handle: str) -> PriceObservation:
        feed_id = handle.lower().removeprefix("0x")
        url = f"{self.endpoint}/v2/updates/price/latest"

        response = await self._get(url, params={"ids[]": feed_id, "parsed": "true"})
        try:
            data = response.json()
        except ValueError as e:
            raise AdapterError(f"Malformed payload for {asset}: {e}") from e

        return self._parse_update(data, feed_id)

    def _parse_update(self, data: dict, feed_id: str) -> PriceObservation:
        """Extract an observation from a parsed price update payload.

        :param data: Decoded JSON response.
        :param feed_id: Requested feed id without 0x prefix.
        :returns: Observation scaled to ``PRICE_DECIMALS``.
        :raises AdapterError: If the payload is malformed.
        """
        try:
            updates = data["parsed"]
            update = next(
                u for u in updates if u["id"].lower().removeprefix("0x") == feed_id
            )
            price_data = update["price"]
            price = int(price_data["price"])
            expo = int(price_data["expo"])
            publish_time = int(price_data["publish_time"])
        except StopIteration as e:
            raise AdapterError(f"No update for feed {feed_id} in payload") from e
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise AdapterError(f"Malformed payload: {e!r}") from e

        if expo > 0:
            raise AdapterError(f"Unexpected positive exponent {expo}")
        if price <= 0:
            raise AdapterError(f"Non-positive price {price}")

        return PriceObservation(
            price=scale_price(price, -expo),
            timestamp=publish_time,
            confidence=ATTESTED_CONFIDENCE,
            source=self.kind,
        )
