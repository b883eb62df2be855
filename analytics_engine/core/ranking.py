"""
Ranked breakdown lists (label, count, percentage).
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from analytics_engine.core.rounding import percentage


@dataclass(frozen=True)
class RankedStat:
    """One row of a ranked breakdown."""

    label: str
    count: int
    percentage: float


def rank_labels(labels: Iterable[str]) -> list[RankedStat]:
    """
    Count labels and rank them by count descending.

    Ties keep first-seen order. Percentages are shares of the total number
    of labels, rounded half-up to one decimal. Empty input gives [].
    """
    counts = Counter(labels)
    total = sum(counts.values())
    return [
        RankedStat(label=label, count=count, percentage=percentage(count, total))
        for label, count in counts.most_common()
    ]

