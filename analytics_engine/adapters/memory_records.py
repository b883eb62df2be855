"""
In-memory record source for tests and local development.

Implements RecordSourcePort over plain lists.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from analytics_engine.core.entities import ConversionEvent, EventRecord, TimeRange

logger = logging.getLogger(__name__)


class InMemoryRecordSource:
    """Holds records and conversions in insertion order."""

    def __init__(
        self,
        records: Iterable[EventRecord] = (),
        conversions: Iterable[ConversionEvent] = (),
    ) -> None:
        self._records: list[EventRecord] = list(records)
        self._conversions: list[ConversionEvent] = list(conversions)

    def add(self, record: EventRecord) -> None:
        self._records.append(record)

    def add_conversion(self, conversion: ConversionEvent) -> None:
        self._conversions.append(conversion)

    def list_records(self, time_range: TimeRange | None = None) -> list[EventRecord]:
        if time_range is None:
            records = list(self._records)
        else:
            records = [r for r in self._records if time_range.contains(r.timestamp)]
        logger.debug("In-memory source: returning %d of %d records", len(records), len(self._records))
        return records

    def list_conversions(self, time_range: TimeRange | None = None) -> list[ConversionEvent]:
        if time_range is None:
            return list(self._conversions)
        return [c for c in self._conversions if time_range.contains(c.timestamp)]

    def clear(self) -> None:
        """Clear all data (for testing)."""
        self._records.clear()
        self._conversions.clear()
