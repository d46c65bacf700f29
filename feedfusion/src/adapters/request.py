"""Request-response async feed adapter.

Request-response oracles answer in a later transaction, so a single round
cannot read a fresh answer synchronously. Until an integration exists this
adapter fails closed: it never reports a price.
"""

from ..ObservationStore import PriceObservation
from ..SourceKind import SourceKind
from .base import AdapterError, BaseAdapter, register_adapter


@register_adapter
class RequestFeedAdapter(BaseAdapter):
    """Fail-closed adapter for request-response feeds."""

    kind = SourceKind.REQUEST

    async def _fetch(self, asset: str, handle: str) -> PriceObservation:
        raise AdapterError("request-response feeds are not implemented")
