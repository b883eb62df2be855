"""
Analytics component - Dashboard summary and timeseries pipeline.

Composes the classifiers, aggregators and metrics over one batch of event
records.

Invariants:
- I1: Every service is built fresh per call from the rules; no state is
  shared between invocations
- I2: Bot traffic is dropped before any count when exclusion is on,
  including page views of caller-supplied sessions
- I3: Pageviews (records without an event name) drive metrics, series and
  page breakdowns; custom events only feed the events breakdown
- I4: Internal referrers are left out of the referrer breakdown but still
  counted as the ``internal`` medium
- I5: Breakdowns are ranked by count descending, ties in first-seen order
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import timedelta

from analytics_engine.core.entities import (
    AggregatedBucket,
    ConversionEvent,
    EventRecord,
    Session,
    TimeRange,
)
from analytics_engine.core.ranking import RankedStat, rank_labels
from analytics_engine.core.rounding import percentage
from analytics_engine.core.services.analytics_aggregate import (
    AggregateConfig,
    AggregateService,
    BucketType,
    WeekStart,
    create_aggregate_service,
    growth_between,
)
from analytics_engine.core.services.analytics_device import (
    DeviceConfig,
    DeviceInfo,
    DeviceService,
    build_os_rules,
    create_device_service,
)
from analytics_engine.core.services.analytics_geo import GeoAnalytics, create_geo_service
from analytics_engine.core.services.analytics_metrics import (
    EngagementWeights,
    MetricsConfig,
    create_metrics_service,
)
from analytics_engine.core.services.analytics_referrer import (
    ReferrerConfig,
    create_referrer_service,
)
from analytics_engine.rules.models import AnalyticsRules

from .models import (
    DashboardSummary,
    SummaryConfig,
    SummaryInput,
    TimeseriesInput,
    TimeseriesOutput,
)
from .ports import RecordSourcePort

logger = logging.getLogger(__name__)


# --- Config Builders ---


def _build_device_config(rules: AnalyticsRules | None) -> DeviceConfig:
    """Build user agent config from rules."""
    if rules is None or rules.user_agents is None:
        return DeviceConfig()

    ua = rules.user_agents
    return DeviceConfig(
        bot_keywords=tuple(keyword.lower() for keyword in ua.bot_keywords),
        os_rules=build_os_rules(
            tuple((token.lower(), name) for token, name in ua.windows_versions.items())
        ),
        min_browser_versions=tuple(ua.min_browser_versions.items()),
        browser_aliases=tuple((alias.lower(), name) for alias, name in ua.browser_aliases.items()),
    )


def _build_referrer_config(rules: AnalyticsRules | None) -> ReferrerConfig:
    """Build referrer config from rules."""
    if rules is None or rules.referrers is None:
        return ReferrerConfig()

    ref = rules.referrers
    return ReferrerConfig(
        search_engines=tuple(engine.lower() for engine in ref.search_engines),
        social_networks=tuple(network.lower() for network in ref.social_networks),
        search_params=tuple(ref.search_params),
        source_aliases=tuple((domain.lower(), label) for domain, label in ref.source_aliases.items()),
    )


def _build_aggregate_config(rules: AnalyticsRules | None) -> AggregateConfig:
    """Build aggregation config from rules."""
    if rules is None or rules.aggregation is None:
        return AggregateConfig()

    agg = rules.aggregation
    return AggregateConfig(
        week_start=WeekStart(agg.week_start),
        default_bucket_type=BucketType(agg.default_granularity),
        top_periods_limit=agg.top_periods,
    )


def _build_metrics_config(rules: AnalyticsRules | None) -> MetricsConfig:
    """Build metrics config from rules."""
    if rules is None or rules.metrics is None:
        return MetricsConfig()

    m = rules.metrics
    return MetricsConfig(
        anomaly_threshold=m.anomaly_threshold,
        trending_min_growth=m.trending_min_growth,
        engagement=EngagementWeights(**m.engagement.model_dump()),
        duration_buckets=tuple(sorted(m.duration_buckets.items(), key=lambda item: item[1])),
        duration_overflow_label=m.duration_overflow_label,
    )


def _build_summary_config(rules: AnalyticsRules | None) -> SummaryConfig:
    """Build pipeline defaults from rules."""
    if rules is None or rules.summary is None:
        return SummaryConfig()

    s = rules.summary
    return SummaryConfig(
        exclude_bots=s.exclude_bots,
        top_n=s.top_n,
        fill_gaps=s.fill_gaps,
        rolling_window=s.rolling_window,
        current_host=s.current_host,
    )


# --- Helpers ---


def _load_inputs(
    records: Sequence[EventRecord] | None,
    conversions: Sequence[ConversionEvent] | None,
    time_range: TimeRange | None,
    source: RecordSourcePort | None,
) -> tuple[list[EventRecord], list[ConversionEvent] | None]:
    """Take records from the input, falling back to the record source."""
    if records is None:
        if source is None:
            raise ValueError("RecordSourcePort is required when the input carries no records")
        records = source.list_records(time_range)
        if conversions is None:
            conversions = source.list_conversions(time_range)

    if time_range is not None:
        records = [r for r in records if time_range.contains(r.timestamp)]

    return list(records), None if conversions is None else list(conversions)


def _classify_devices(
    records: Sequence[EventRecord],
    device: DeviceService,
) -> list[DeviceInfo]:
    """Classify each record's user agent, parsing each distinct string once."""
    seen: dict[str | None, DeviceInfo] = {}
    infos = []
    for record in records:
        if record.user_agent not in seen:
            seen[record.user_agent] = device.classify(record.user_agent)
        infos.append(seen[record.user_agent])
    return infos


def _drop_bots(
    records: Sequence[EventRecord],
    infos: Sequence[DeviceInfo],
) -> tuple[list[EventRecord], list[DeviceInfo]]:
    kept = [(record, info) for record, info in zip(records, infos) if not info.is_bot]
    return [record for record, _ in kept], [info for _, info in kept]


def _filter_sessions(
    sessions: Iterable[Session],
    time_range: TimeRange | None,
    device: DeviceService,
    exclude_bots: bool,
) -> list[Session]:
    """
    Apply the record filters to caller-supplied sessions.

    Page views outside the range, from bots (when excluded) or carrying an
    event name are removed. Sessions left without page views are dropped;
    sessions that never had any are kept when they start inside the range.
    """

    def keep(pv: EventRecord) -> bool:
        if pv.event_name is not None:
            return False
        if time_range is not None and not time_range.contains(pv.timestamp):
            return False
        return not (exclude_bots and device.is_bot(pv.user_agent))

    kept = []
    for session in sessions:
        if not session.page_views:
            if time_range is None or time_range.contains(session.start_time):
                kept.append(session)
            continue

        views = tuple(pv for pv in session.page_views if keep(pv))
        if not views:
            continue
        if len(views) < len(session.page_views):
            session = replace(session, page_views=views)
        kept.append(session)
    return kept


def _primary_language(tag: str | None) -> str | None:
    """``en-US`` -> ``en``."""
    if not tag:
        return None
    primary = tag.replace("_", "-").split("-")[0].strip().lower()
    return primary or None


def _geo_ranking(items: Sequence[GeoAnalytics], total: int) -> list[RankedStat]:
    return [
        RankedStat(
            label=item.location,
            count=item.page_views,
            percentage=percentage(item.page_views, total),
        )
        for item in items
    ]


def _top(stats: Iterable[RankedStat], limit: int) -> tuple[RankedStat, ...]:
    return tuple(stats)[:limit]


# --- Session Assembly ---


def assemble_sessions(
    records: Iterable[EventRecord],
    conversions: Iterable[ConversionEvent] | None = None,
) -> list[Session]:
    """
    Group records into sessions by session id.

    Sessions and their page views keep input order. A session ends at its
    last record plus that record's duration when known. ``converted`` is
    only set when conversions are supplied.
    """
    grouped: dict[str, list[EventRecord]] = {}
    for record in records:
        grouped.setdefault(record.session_id, []).append(record)

    converted_ids = None
    if conversions is not None:
        converted_ids = {conversion.session_id for conversion in conversions}

    sessions = []
    for session_id, page_views in grouped.items():
        last = page_views[-1]
        end_time = last.timestamp
        if last.duration is not None:
            end_time = end_time + timedelta(seconds=last.duration)

        sessions.append(
            Session(
                id=session_id,
                start_time=page_views[0].timestamp,
                page_views=tuple(page_views),
                user_id=next((pv.user_id for pv in page_views if pv.user_id), None),
                end_time=end_time,
                converted=None if converted_ids is None else session_id in converted_ids,
            )
        )
    return sessions


# --- Component Entry Points ---


def run_summary(
    inp: SummaryInput,
    *,
    source: RecordSourcePort | None = None,
    rules: AnalyticsRules | None = None,
) -> DashboardSummary:
    """
    Build the dashboard summary for one batch of records.

    Args:
        inp: Records (or None to read from ``source``), window and overrides.
        source: Optional record source port, required when ``inp.records`` is None.
        rules: Optional analytics rules for configuration.

    Returns:
        DashboardSummary with metrics, ranked breakdowns, series and anomalies.
    """
    config = _build_summary_config(rules)
    top_n = config.top_n if inp.top_n is None else inp.top_n
    if top_n < 0:
        raise ValueError(f"top_n must be non-negative, got {top_n}")

    device = create_device_service(_build_device_config(rules))
    referrer = create_referrer_service(
        _build_referrer_config(rules),
        current_host=inp.current_host or config.current_host,
    )
    aggregator = create_aggregate_service(_build_aggregate_config(rules))
    metrics = create_metrics_service(_build_metrics_config(rules))
    geo = create_geo_service()

    records, conversions = _load_inputs(inp.records, inp.conversions, inp.time_range, source)
    infos = _classify_devices(records, device)

    exclude_bots = config.exclude_bots if inp.exclude_bots is None else inp.exclude_bots
    bots_excluded = 0
    if exclude_bots:
        before = len(records)
        records, infos = _drop_bots(records, infos)
        bots_excluded = before - len(records)
        logger.debug("Excluded %d bot records of %d", bots_excluded, before)

    page_views = [r for r in records if r.event_name is None]
    page_view_devices = [info for r, info in zip(records, infos) if r.event_name is None]
    custom_events = [r.event_name for r in records if r.event_name is not None]

    if inp.sessions is not None:
        sessions = _filter_sessions(inp.sessions, inp.time_range, device, exclude_bots)
        logger.debug("Kept %d of %d supplied sessions", len(sessions), len(inp.sessions))
    else:
        sessions = assemble_sessions(page_views, conversions)

    referrer_infos = [referrer.classify(pv.referrer) for pv in page_views]
    locations = [pv.location() for pv in page_views]

    series = _build_series(
        aggregator,
        page_views,
        inp.bucket_type,
        inp.time_range,
        inp.window_minutes,
        config.fill_gaps if inp.fill_gaps is None else inp.fill_gaps,
    )

    summary = DashboardSummary(
        metrics=metrics.summary(page_views, sessions, conversions),
        pages=_top(rank_labels(pv.path for pv in page_views), top_n),
        landing_pages=_top(
            rank_labels(s.page_views[0].path for s in sessions if s.page_views), top_n
        ),
        exit_pages=_top(
            rank_labels(s.page_views[-1].path for s in sessions if s.page_views), top_n
        ),
        referrers=_top(
            rank_labels(info.source for info in referrer_infos if not info.is_internal), top_n
        ),
        media=_top(rank_labels(info.medium for info in referrer_infos), top_n),
        devices=_top(rank_labels(info.device.value for info in page_view_devices), top_n),
        browsers=_top(rank_labels(info.browser for info in page_view_devices), top_n),
        operating_systems=_top(rank_labels(info.os for info in page_view_devices), top_n),
        countries=_top(_geo_ranking(geo.by_country(locations), len(locations)), top_n),
        cities=_top(_geo_ranking(geo.by_city(locations), len(locations)), top_n),
        languages=_top(
            rank_labels(
                lang for lang in (_primary_language(pv.language) for pv in page_views) if lang
            ),
            top_n,
        ),
        campaigns=_top(
            rank_labels(info.campaign for info in referrer_infos if info.campaign), top_n
        ),
        events=_top(rank_labels(custom_events), top_n),
        series=tuple(series),
        anomalies=metrics.detect_anomalies([bucket.page_views for bucket in series]),
        bots_excluded=bots_excluded,
    )

    logger.info(
        "Built analytics summary: %d page views, %d sessions, %d buckets",
        len(page_views),
        len(sessions),
        len(series),
    )
    return summary


def _build_series(
    aggregator: AggregateService,
    page_views: Sequence[EventRecord],
    bucket_type: BucketType | None,
    time_range: TimeRange | None,
    window_minutes: int | None,
    fill_gaps: bool,
) -> list[AggregatedBucket]:
    granularity = bucket_type or aggregator.config.default_bucket_type
    buckets = aggregator.aggregate(
        page_views, granularity, time_range, window_minutes=window_minutes
    )
    if not fill_gaps:
        return buckets
    if time_range is None:
        logger.debug("Gap filling skipped: no time range given")
        return buckets
    return aggregator.fill_missing_periods(
        buckets, granularity, time_range, window_minutes=window_minutes
    )


def run_timeseries(
    inp: TimeseriesInput,
    *,
    source: RecordSourcePort | None = None,
    rules: AnalyticsRules | None = None,
) -> TimeseriesOutput:
    """
    Build a charting series with its rolling average.

    Args:
        inp: Records (or None to read from ``source``), granularity and window.
        source: Optional record source port, required when ``inp.records`` is None.
        rules: Optional analytics rules for configuration.

    Returns:
        TimeseriesOutput with buckets, rolling averages and the growth of the
        last bucket over the one before it.
    """
    config = _build_summary_config(rules)
    device = create_device_service(_build_device_config(rules))
    aggregator = create_aggregate_service(_build_aggregate_config(rules))

    records, _ = _load_inputs(inp.records, None, inp.time_range, source)

    exclude_bots = config.exclude_bots if inp.exclude_bots is None else inp.exclude_bots
    if exclude_bots:
        records = [r for r in records if not device.is_bot(r.user_agent)]

    page_views = [r for r in records if r.event_name is None]
    buckets = _build_series(
        aggregator,
        page_views,
        inp.bucket_type,
        inp.time_range,
        inp.window_minutes,
        config.fill_gaps if inp.fill_gaps is None else inp.fill_gaps,
    )

    window = config.rolling_window if inp.rolling_window is None else inp.rolling_window
    rolling = aggregator.rolling_average(buckets, window, inp.metric)

    growth = 0.0
    if len(buckets) >= 2:
        growth = growth_between(buckets[-1], buckets[-2])

    logger.info("Built analytics timeseries: %d buckets", len(buckets))
    return TimeseriesOutput(buckets=tuple(buckets), rolling=tuple(rolling), growth_rate=growth)


def run(
    inp: SummaryInput | TimeseriesInput,
    *,
    source: RecordSourcePort | None = None,
    rules: AnalyticsRules | None = None,
) -> DashboardSummary | TimeseriesOutput:
    """
    Main entry point for the analytics component.

    Dispatches to appropriate handler based on input type.

    Args:
        inp: Input object determining the operation.
        source: Optional record source port (required when the input has no records).
        rules: Optional analytics rules for configuration.

    Returns:
        Appropriate output object based on input type.
    """
    if isinstance(inp, SummaryInput):
        return run_summary(inp, source=source, rules=rules)
    elif isinstance(inp, TimeseriesInput):
        return run_timeseries(inp, source=source, rules=rules)
    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
