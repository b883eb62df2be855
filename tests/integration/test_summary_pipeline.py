"""
Integration tests for the analytics component pipeline.

Runs classification, session assembly, bucketing and metrics end to end
over a small mixed batch: two visitors, a returning visit, a crawler and
a custom event.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

import pytest

from analytics_engine.adapters import InMemoryRecordSource
from analytics_engine.components.analytics import (
    BucketType,
    DashboardSummary,
    SummaryInput,
    TimeseriesInput,
    TimeseriesOutput,
    assemble_sessions,
    run,
    run_summary,
    run_timeseries,
)
from analytics_engine.core.entities import ConversionEvent, EventRecord, TimeRange
from analytics_engine.core.ranking import RankedStat
from analytics_engine.rules import AnalyticsRules, Rules
from tests.user_agents import CHROME_WINDOWS, GOOGLEBOT, SAFARI_IPHONE

UK = {"country": "United Kingdom", "country_code": "GB", "city": "London"}
FR = {"country": "France", "country_code": "FR", "city": "Paris"}


@pytest.fixture
def records(make_record: Callable[..., EventRecord]) -> tuple[EventRecord, ...]:
    """Saturday traffic plus one returning visit on Sunday."""
    return (
        make_record(
            0,
            session_id="s1",
            user_id="u1",
            path="/",
            referrer="https://www.google.com/search?q=analytics",
            user_agent=CHROME_WINDOWS,
            language="en-US",
            duration=30,
            **UK,
        ),
        make_record(
            2,
            session_id="s1",
            user_id="u1",
            path="/pricing",
            referrer="https://example.com/",
            user_agent=CHROME_WINDOWS,
            language="en-US",
            duration=60,
            **UK,
        ),
        make_record(5, session_id="s4", path="/", user_agent=GOOGLEBOT),
        make_record(
            3,
            session_id="s1",
            user_id="u1",
            path="/pricing",
            user_agent=CHROME_WINDOWS,
            event_name="signup",
        ),
        make_record(
            60,
            session_id="s2",
            user_id="u2",
            path="/blog",
            referrer="https://m.facebook.com/story.php?id=1",
            user_agent=SAFARI_IPHONE,
            language="fr-FR",
            duration=10,
            **FR,
        ),
        make_record(
            24 * 60,
            session_id="s3",
            user_id="u1",
            path="/",
            user_agent=CHROME_WINDOWS,
            language="en-GB",
            **UK,
        ),
    )


def _labels(stats: Sequence[RankedStat]) -> list[tuple[str, int]]:
    return [(s.label, s.count) for s in stats]


class TestRunSummary:
    """Test the dashboard summary pipeline."""

    def test_headline_metrics(self, records: tuple[EventRecord, ...]) -> None:
        """Bots are dropped and sessions assembled from pageviews."""
        summary = run_summary(SummaryInput(records=records, current_host="example.com"))

        assert summary.bots_excluded == 1
        assert summary.metrics.total_page_views == 4
        assert summary.metrics.total_sessions == 3
        assert summary.metrics.unique_visitors == 2
        assert summary.metrics.bounce_rate == 66.7
        assert summary.metrics.avg_session_duration == 63
        assert summary.metrics.return_visitor_rate == 50.0
        assert summary.metrics.conversion_rate is None

    def test_page_breakdowns(self, records: tuple[EventRecord, ...]) -> None:
        """Pages, landing and exit pages are ranked."""
        summary = run_summary(SummaryInput(records=records))

        assert _labels(summary.pages) == [("/", 2), ("/pricing", 1), ("/blog", 1)]
        assert summary.pages[0].percentage == 50.0
        assert _labels(summary.landing_pages) == [("/", 2), ("/blog", 1)]
        assert _labels(summary.exit_pages) == [("/pricing", 1), ("/blog", 1), ("/", 1)]

    def test_traffic_breakdowns(self, records: tuple[EventRecord, ...]) -> None:
        """Internal referrers count as a medium but not as a referrer."""
        summary = run_summary(SummaryInput(records=records, current_host="example.com"))

        assert _labels(summary.referrers) == [("google", 1), ("facebook", 1), ("(direct)", 1)]
        assert [s.label for s in summary.media] == ["search", "internal", "social", "direct"]
        assert summary.campaigns == ()

    def test_audience_breakdowns(self, records: tuple[EventRecord, ...]) -> None:
        """Devices, browsers, geography and languages."""
        summary = run_summary(SummaryInput(records=records))

        assert _labels(summary.devices) == [("Desktop", 3), ("Mobile", 1)]
        assert _labels(summary.browsers) == [("Chrome", 3), ("Safari", 1)]
        assert _labels(summary.countries) == [("United Kingdom", 3), ("France", 1)]
        assert summary.countries[0].percentage == 75.0
        assert _labels(summary.cities) == [("London, United Kingdom", 3), ("Paris, France", 1)]
        assert _labels(summary.languages) == [("en", 3), ("fr", 1)]
        assert _labels(summary.events) == [("signup", 1)]

    def test_series_and_anomalies(self, records: tuple[EventRecord, ...]) -> None:
        """Daily series by default; a two-point series has no anomalies."""
        summary = run_summary(SummaryInput(records=records))

        assert [(b.period, b.page_views) for b in summary.series] == [
            ("2024-06-15T00:00:00Z", 3),
            ("2024-06-16T00:00:00Z", 1),
        ]
        assert summary.anomalies.anomalies == ()
        assert summary.anomalies.mean == 2.0

    def test_time_range_and_gap_filling(
        self, records: tuple[EventRecord, ...], base_time: datetime
    ) -> None:
        """Records outside the range are dropped; empty hours are filled."""
        window = TimeRange(base_time, base_time + timedelta(hours=3))
        summary = run_summary(
            SummaryInput(
                records=records,
                time_range=window,
                bucket_type=BucketType.HOUR,
                fill_gaps=True,
            )
        )

        assert summary.metrics.total_page_views == 3
        assert [b.page_views for b in summary.series] == [2, 1, 0, 0]

    def test_bots_kept_when_disabled(self, records: tuple[EventRecord, ...]) -> None:
        """Bot exclusion can be switched off per call."""
        summary = run_summary(SummaryInput(records=records, exclude_bots=False))

        assert summary.bots_excluded == 0
        assert summary.metrics.total_page_views == 5

    def test_top_n(self, records: tuple[EventRecord, ...]) -> None:
        """Breakdowns are truncated to top_n; negative is rejected."""
        summary = run_summary(SummaryInput(records=records, top_n=1))
        assert _labels(summary.pages) == [("/", 2)]

        with pytest.raises(ValueError, match="non-negative"):
            run_summary(SummaryInput(records=records, top_n=-1))

    def test_supplied_sessions_used(
        self, records: tuple[EventRecord, ...], make_session: Callable
    ) -> None:
        """Explicit sessions replace assembly."""
        sessions = (make_session("x", pages=4, seconds=120),)
        summary = run_summary(SummaryInput(records=records, sessions=sessions))

        assert summary.metrics.total_sessions == 1
        assert summary.metrics.bounce_rate == 0.0


    def test_supplied_sessions_filtered_like_records(
        self, make_record: Callable[..., EventRecord], base_time: datetime
    ) -> None:
        """Bot and out-of-range page views leave supplied sessions too."""
        batch = (
            make_record(0, session_id="a", user_agent=CHROME_WINDOWS),
            make_record(1, session_id="b", user_agent=GOOGLEBOT),
            make_record(2, session_id="b", user_agent=GOOGLEBOT),
            make_record(30, session_id="c", user_agent=CHROME_WINDOWS),
            make_record(180, session_id="c", user_agent=CHROME_WINDOWS),
            make_record(240, session_id="d", user_agent=CHROME_WINDOWS),
        )
        sessions = tuple(assemble_sessions(batch))

        summary = run_summary(SummaryInput(records=batch, sessions=sessions))
        assert summary.bots_excluded == 2
        assert summary.metrics.total_page_views == 4
        assert summary.metrics.total_sessions == 3

        window = TimeRange(base_time, base_time + timedelta(hours=2))
        summary = run_summary(SummaryInput(records=batch, sessions=sessions, time_range=window))
        assert summary.metrics.total_page_views == 2
        assert summary.metrics.total_sessions == 2
        # "c" keeps only its in-range view, so both remaining sessions bounce
        assert summary.metrics.bounce_rate == 100.0

    def test_supplied_bot_sessions_kept_when_disabled(
        self, make_record: Callable[..., EventRecord]
    ) -> None:
        """Without bot exclusion supplied sessions pass through."""
        batch = (
            make_record(0, session_id="a", user_agent=CHROME_WINDOWS),
            make_record(1, session_id="b", user_agent=GOOGLEBOT),
        )
        sessions = tuple(assemble_sessions(batch))
        summary = run_summary(SummaryInput(records=batch, sessions=sessions, exclude_bots=False))

        assert summary.metrics.total_sessions == 2


class TestRecordSource:
    """Test reading through the record source port."""

    def test_reads_records_and_conversions(
        self, records: tuple[EventRecord, ...], base_time: datetime
    ) -> None:
        """Records and conversions come from the source when the input has none."""
        source = InMemoryRecordSource(records, [ConversionEvent("s1", base_time, "signup")])
        summary = run_summary(SummaryInput(), source=source)

        assert summary.metrics.total_page_views == 4
        assert summary.metrics.conversion_rate == 33.3

    def test_missing_source_raises(self) -> None:
        """No records and no source is a contract violation."""
        with pytest.raises(ValueError, match="RecordSourcePort is required"):
            run_summary(SummaryInput())


class TestRules:
    """Test rules flowing into the pipeline."""

    def test_shipped_rules(self, records: tuple[EventRecord, ...], rules: Rules) -> None:
        """The shipped rules reproduce the defaults."""
        with_rules = run_summary(SummaryInput(records=records), rules=rules.analytics)
        without = run_summary(SummaryInput(records=records))

        assert with_rules == without

    def test_rules_override_defaults(self, records: tuple[EventRecord, ...]) -> None:
        """Summary rules change bot handling and truncation."""
        rules = AnalyticsRules.model_validate(
            {
                "summary": {
                    "exclude_bots": False,
                    "top_n": 2,
                    "fill_gaps": False,
                    "rolling_window": 3,
                },
                "aggregation": {
                    "week_start": "monday",
                    "default_granularity": "week",
                    "top_periods": 5,
                },
            }
        )
        summary = run_summary(SummaryInput(records=records), rules=rules)

        assert summary.bots_excluded == 0
        assert len(summary.pages) == 2
        # Saturday and Sunday share the Monday-start week
        assert [(b.period, b.page_views) for b in summary.series] == [
            ("2024-06-10T00:00:00Z", 5)
        ]


class TestRunTimeseries:
    """Test the charting series."""

    def test_daily_series(self, records: tuple[EventRecord, ...]) -> None:
        """Rolling average and growth of the last bucket."""
        output = run_timeseries(
            TimeseriesInput(records=records, bucket_type=BucketType.DAY, rolling_window=2)
        )

        assert [b.page_views for b in output.buckets] == [3, 1]
        assert [p.rolling_avg for p in output.rolling] == [3.0, 2.0]
        assert output.growth_rate == -66.7

    def test_single_bucket_growth(self, records: tuple[EventRecord, ...]) -> None:
        """Fewer than two buckets gives zero growth."""
        output = run_timeseries(TimeseriesInput(records=records[:1]))

        assert len(output.buckets) == 1
        assert output.growth_rate == 0.0

    def test_invalid_rolling_window(self, records: tuple[EventRecord, ...]) -> None:
        """Rolling window must be positive."""
        with pytest.raises(ValueError, match="Window size must be positive"):
            run_timeseries(TimeseriesInput(records=records, rolling_window=0))


class TestRunDispatch:
    """Test the run dispatcher."""

    def test_dispatch(self, records: tuple[EventRecord, ...]) -> None:
        """Input type selects the operation."""
        assert isinstance(run(SummaryInput(records=records)), DashboardSummary)
        assert isinstance(run(TimeseriesInput(records=records)), TimeseriesOutput)

    def test_unknown_input(self) -> None:
        """Unknown inputs are rejected."""
        with pytest.raises(ValueError, match="Unknown input type"):
            run("summary")  # type: ignore[arg-type]
