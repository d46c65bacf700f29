"""Base source adapter interface and shared HTTP client management.

Every adapter inherits from BaseAdapter and implements ``_fetch()``, raising
:class:`AdapterError` (or anything else) when the source cannot deliver.
The public ``fetch()`` converts every failure into a :class:`SourceFailure`
so one misbehaving source never aborts its siblings.

A shared httpx.AsyncClient is used across HTTP-based adapters to avoid
connection overhead.

.. code-block:: python

    @register_adapter
    class MyAdapter(BaseAdapter):
        kind = SourceKind.ATTESTED

        async def _fetch(self, asset: str, handle: str) -> PriceObservation:
            response = await self._get(f"https://api.example.com/{handle}")
            data = response.json()
            return PriceObservation(
                price=int(data["price"]),
                timestamp=int(data["time"]),
                confidence=90,
                source=self.kind,
            )
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

import httpx

from ..ObservationStore import PriceObservation
from ..SourceKind import SourceKind

logger = logging.getLogger(__name__)

# Common fixed-point scale every adapter converts its answers to.
PRICE_DECIMALS = 8


class AdapterError(Exception):
    """Base exception for adapter errors."""

    pass


class AdapterConfigError(AdapterError):
    """Raised when adapter configuration is invalid (e.g., unset feed handle)."""

    pass


class AdapterHTTPError(AdapterError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


@dataclass(frozen=True)
class SourceFailure:
    """Typed failure of one source for one asset in one round.

    :ivar source: Source that failed.
    :ivar reason: Human-readable failure reason.
    """

    source: SourceKind
    reason: str

    # Failures never carry a price, so their confidence is always zero.
    confidence: ClassVar[int] = 0


FetchResult = PriceObservation | SourceFailure


def scale_price(value: int, decimals: int, target_decimals: int = PRICE_DECIMALS) -> int:
    """Rescale a fixed-point integer between decimal precisions.

    :param value: Fixed-point value.
    :param decimals: Number of decimals of ``value``.
    :param target_decimals: Desired number of decimals.
    :returns: Rescaled value (truncated toward zero when reducing precision).

    .. code-block:: python

        >>> scale_price(123456, 2, 4)
        12345600
        >>> scale_price(123456789, 10, 8)
        1234567
    """
    if decimals == target_decimals:
        return value
    if decimals < target_decimals:
        return value * 10 ** (target_decimals - decimals)
    return value // 10 ** (decimals - target_decimals)


class BaseAdapter(ABC):
    """Abstract base class for source adapters.

    Subclasses must implement:
        - kind: Class variable identifying the source variant
        - _fetch(): Async method returning one observation or raising

    :cvar kind: Source variant served by this adapter.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    kind: ClassVar[SourceKind]

    DEFAULT_TIMEOUT = 10.0

    def __init__(self, timeout: float | None = None):
        """Initialize the adapter.

        :param timeout: Request timeout in seconds (default: 10).
        """
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @property
    def name(self) -> str:
        """Lowercase source name used in log lines."""
        return self.kind.label

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all adapter instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        if BaseAdapter._shared_client is None or BaseAdapter._shared_client.is_closed:
            BaseAdapter._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=True,
            )
        return BaseAdapter._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseAdapter._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseAdapter._shared_client = None

    async def fetch(self, asset: str, handle: str | None) -> FetchResult:
        """Fetch one observation for an asset, never raising.

        :param asset: Asset name (e.g., "btc").
        :param handle: Feed address or identifier configured for this source.
        :returns: PriceObservation on success, SourceFailure otherwise.
        """
        if not handle:
            return SourceFailure(self.kind, "feed handle not set")
        try:
            observation = await self._fetch(asset, handle)
        except AdapterError as e:
            logger.warning(f"[{self.name}] Failed to fetch {asset}: {e}")
            return SourceFailure(self.kind, str(e))
        except Exception as e:
            logger.warning(f"[{self.name}] Unexpected error fetching {asset}: {e!r}")
            return SourceFailure(self.kind, f"unexpected error: {e!r}")

        if observation.price <= 0:
            logger.warning(f"[{self.name}] Non-positive price for {asset}: {observation.price}")
            return SourceFailure(self.kind, f"non-positive price {observation.price}")
        return observation

    @abstractmethod
    async def _fetch(self, asset: str, handle: str) -> PriceObservation:
        """Fetch the current observation from the source.

        :param asset: Asset name.
        :param handle: Feed address or identifier (never empty).
        :returns: Observation with the price at ``PRICE_DECIMALS`` scale.
        :raises AdapterError: If the source cannot deliver a usable price.
        """
        pass

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises AdapterHTTPError: On non-2xx response.
        :raises AdapterError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
            if not response.is_success:
                logger.debug(
                    "HTTP GET %s failed with status %s: %s",
                    url,
                    response.status_code,
                    response.text[:200],
                )
                raise AdapterHTTPError(response.status_code, response.text[:200])
            return response
        except httpx.TimeoutException as e:
            raise AdapterError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise AdapterError(f"Request failed: {e}") from e


# Registry of available adapters (populated by subclass imports)
ADAPTER_REGISTRY: dict[SourceKind, type[BaseAdapter]] = {}


def register_adapter(cls: type[BaseAdapter]) -> type[BaseAdapter]:
    """Decorator to register an adapter class in the global registry.

    :param cls: Adapter class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If the adapter defines no source kind.
    """
    if not isinstance(getattr(cls, "kind", None), SourceKind):
        raise ValueError(f"Adapter {cls.__name__} must define a 'kind' class variable")
    ADAPTER_REGISTRY[cls.kind] = cls
    return cls


def get_adapter(kind: SourceKind, **kwargs) -> BaseAdapter:
    """Get an adapter instance by source kind.

    :param kind: Source kind.
    :param kwargs: Adapter-specific constructor arguments.
    :returns: Adapter instance.
    :raises ValueError: If no adapter is registered for ``kind``.
    """
    if kind not in ADAPTER_REGISTRY:
        available = ", ".join(k.label for k in sorted(ADAPTER_REGISTRY))
        raise ValueError(f"No adapter for source '{kind}'. Available: {available}")
    return ADAPTER_REGISTRY[kind](**kwargs)


def get_available_adapters() -> list[SourceKind]:
    """Get list of source kinds with a registered adapter.

    :returns: Sorted list of registered source kinds.
    """
    return sorted(ADAPTER_REGISTRY)
