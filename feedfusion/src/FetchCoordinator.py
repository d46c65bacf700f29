"""FetchCoordinator: Concurrent per-source fetching with isolated failures.

Architecture:
    - One task per enabled source, all started together
    - Each task carries its own timeout
    - Timeouts and exceptions become SourceFailure results
    - Every task is awaited; a failing source never cancels its siblings
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .adapters import FetchResult, SourceFailure
from .SourceKind import SourceKind

if TYPE_CHECKING:
    from .adapters import BaseAdapter
    from .ConfigStore import OracleConfig

logger = logging.getLogger(__name__)


class FetchCoordinator:
    """Fans out one asset's fetch to every enabled source.

    :ivar adapters: Dict mapping source kinds to adapter instances.
    :ivar fetch_timeout: Timeout for each source fetch in seconds.
    """

    def __init__(
        self,
        adapters: dict[SourceKind, BaseAdapter],
        fetch_timeout: float = 10.0,
    ) -> None:
        """Initialize the fetch coordinator.

        :param adapters: Dict mapping source kinds to adapter instances.
        :param fetch_timeout: Timeout for each source fetch (default: 10.0).
        """
        self.adapters = adapters
        self.fetch_timeout = fetch_timeout

    async def fetch_all(self, config: OracleConfig) -> dict[SourceKind, FetchResult]:
        """Fetch one observation per enabled source of an asset.

        :param config: Configuration snapshot of the asset.
        :returns: Dict mapping every enabled source to its result.
        """
        sources = config.enabled_sources
        if not sources:
            return {}

        tasks = [
            self._fetch_single(source, config.asset, config.source_handles.get(source))
            for source in sources
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        merged: dict[SourceKind, FetchResult] = {}
        for source, result in zip(sources, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(f"[{source.label}] Fetch exception for {config.asset}: {result!r}")
                merged[source] = SourceFailure(source, f"unexpected error: {result!r}")
            else:
                merged[source] = result
        return merged

    async def _fetch_single(
        self,
        source: SourceKind,
        asset: str,
        handle: str | None,
    ) -> FetchResult:
        """Fetch a single source with timeout.

        :param source: Source kind.
        :param asset: Asset name.
        :param handle: Configured feed handle.
        :returns: Observation or SourceFailure.
        """
        adapter = self.adapters.get(source)
        if adapter is None:
            return SourceFailure(source, "no adapter registered")

        try:
            return await asyncio.wait_for(
                adapter.fetch(asset, handle),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{source.label}] Timeout fetching {asset}")
            return SourceFailure(source, f"timeout after {self.fetch_timeout}s")
        except Exception as e:
            logger.warning(f"[{source.label}] Error fetching {asset}: {e}")
            return SourceFailure(source, str(e))
