"""
Record Source Interface.

Protocol-based interface for the collection that feeds the engine.
Implementations: in-memory (now); the ingestion store lives outside this
package.

Key requirements:
- Records are already geo-resolved and anonymised
- Returned sequences are independent copies; callers may not mutate the
  source through them
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from analytics_engine.core.entities import ConversionEvent, EventRecord, TimeRange


class RecordSourcePort(Protocol):
    """Read-only supplier of event records and conversions."""

    def list_records(self, time_range: TimeRange | None = None) -> Sequence[EventRecord]:
        """Records inside ``time_range`` (all records when None)."""
        ...

    def list_conversions(self, time_range: TimeRange | None = None) -> Sequence[ConversionEvent]:
        """Conversion events inside ``time_range`` (all when None)."""
        ...
