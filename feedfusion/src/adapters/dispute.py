"""Dispute-window feed adapter.

Optimistic oracles only settle a price after a dispute window closes.
Until an integration exists this adapter fails closed: it never reports a
price.
"""

from ..ObservationStore import PriceObservation
from ..SourceKind import SourceKind
from .base import AdapterError, BaseAdapter, register_adapter


@register_adapter
class DisputeFeedAdapter(BaseAdapter):
    """Fail-closed adapter for dispute-window feeds."""

    kind = SourceKind.DISPUTE

    async def _fetch(self, asset: str, handle: str) -> PriceObservation:
        raise AdapterError("dispute-window feeds are not implemented")
