"""
Analytics component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass

from analytics_engine.core.entities import (
    AggregatedBucket,
    ConversionEvent,
    EventRecord,
    Session,
    TimeRange,
)
from analytics_engine.core.ranking import RankedStat
from analytics_engine.core.services.analytics_aggregate import BucketType, Metric, RollingPoint
from analytics_engine.core.services.analytics_metrics import AnomalyReport, MetricsSummary

# --- Configuration ---


@dataclass(frozen=True)
class SummaryConfig:
    """Pipeline defaults; inputs may override each of them."""

    exclude_bots: bool = True
    top_n: int = 10
    fill_gaps: bool = False
    rolling_window: int = 7
    current_host: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class SummaryInput:
    """
    Input for building a dashboard summary.

    ``records`` None means "read from the record source". ``sessions`` None
    means "assemble sessions from the records".
    """

    records: tuple[EventRecord, ...] | None = None
    time_range: TimeRange | None = None
    bucket_type: BucketType | None = None
    window_minutes: int | None = None
    sessions: tuple[Session, ...] | None = None
    conversions: tuple[ConversionEvent, ...] | None = None
    current_host: str | None = None
    top_n: int | None = None
    fill_gaps: bool | None = None
    exclude_bots: bool | None = None


@dataclass(frozen=True)
class TimeseriesInput:
    """Input for a charting series with rolling average."""

    records: tuple[EventRecord, ...] | None = None
    bucket_type: BucketType | None = None
    time_range: TimeRange | None = None
    window_minutes: int | None = None
    rolling_window: int | None = None
    metric: Metric = Metric.PAGE_VIEWS
    fill_gaps: bool | None = None
    exclude_bots: bool | None = None


# --- Output Models ---


@dataclass(frozen=True)
class DashboardSummary:
    """Everything a dashboard needs for one site and window."""

    metrics: MetricsSummary
    pages: tuple[RankedStat, ...]
    landing_pages: tuple[RankedStat, ...]
    exit_pages: tuple[RankedStat, ...]
    referrers: tuple[RankedStat, ...]
    media: tuple[RankedStat, ...]
    devices: tuple[RankedStat, ...]
    browsers: tuple[RankedStat, ...]
    operating_systems: tuple[RankedStat, ...]
    countries: tuple[RankedStat, ...]
    cities: tuple[RankedStat, ...]
    languages: tuple[RankedStat, ...]
    campaigns: tuple[RankedStat, ...]
    events: tuple[RankedStat, ...]
    series: tuple[AggregatedBucket, ...]
    anomalies: AnomalyReport
    bots_excluded: int = 0


@dataclass(frozen=True)
class TimeseriesOutput:
    """Bucketed series, its trailing average and latest growth."""

    buckets: tuple[AggregatedBucket, ...]
    rolling: tuple[RollingPoint, ...]
    growth_rate: float
