"""SourceKind: Identifier of a price source variant.

The numeric values are the source identifiers used in asset configuration
and carried on every observation.

.. code-block:: python

    >>> SourceKind.from_string("reference")
    <SourceKind.REFERENCE: 1>
    >>> SourceKind.from_string("2")
    <SourceKind.ATTESTED: 2>
"""

from __future__ import annotations

from enum import IntEnum


class SourceKind(IntEnum):
    """Closed set of supported source variants."""

    REFERENCE = 1  # pull-based reference feed (latestRoundData)
    ATTESTED = 2  # push/attested feed
    REQUEST = 3  # request-response async feed
    DISPUTE = 4  # dispute-window feed

    @property
    def label(self) -> str:
        """Lowercase name used in logs and CLI options."""
        return self.name.lower()

    @classmethod
    def from_string(cls, value: str) -> SourceKind:
        """Parse a source kind from its name or numeric identifier.

        :param value: Name (e.g., "reference") or number (e.g., "1").
        :returns: Matching SourceKind.
        :raises ValueError: If value names no known source.
        """
        value = value.strip()
        if value.isdigit():
            try:
                return cls(int(value))
            except ValueError:
                pass
        else:
            try:
                return cls[value.upper()]
            except KeyError:
                pass
        available = ", ".join(k.label for k in cls)
        raise ValueError(f"Unknown source '{value}'. Available: {available}")
