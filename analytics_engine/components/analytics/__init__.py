"""
Analytics component - Dashboard summary and timeseries pipeline.
"""

# Service re-exports
from analytics_engine.core.services.analytics_aggregate import (
    AggregateConfig,
    AggregateService,
    BucketType,
    WeekStart,
    calculate_bucket_end,
    calculate_bucket_start,
    create_aggregate_service,
)
from analytics_engine.core.services.analytics_device import (
    DeviceConfig,
    DeviceInfo,
    DeviceService,
    DeviceType,
    classify_user_agent,
    create_device_service,
    is_bot,
)
from analytics_engine.core.services.analytics_geo import (
    GeoAnalytics,
    GeoConfig,
    GeoService,
    create_geo_service,
)
from analytics_engine.core.services.analytics_metrics import (
    AnomalyReport,
    MetricsConfig,
    MetricsService,
    MetricsSummary,
    create_metrics_service,
)
from analytics_engine.core.services.analytics_referrer import (
    Medium,
    ReferrerConfig,
    ReferrerInfo,
    ReferrerService,
    classify_referrer,
    create_referrer_service,
)

from .component import (
    assemble_sessions,
    run,
    run_summary,
    run_timeseries,
)
from .models import (
    DashboardSummary,
    SummaryConfig,
    SummaryInput,
    TimeseriesInput,
    TimeseriesOutput,
)
from .ports import RecordSourcePort

__all__ = [
    # Entry points
    "assemble_sessions",
    "run",
    "run_summary",
    "run_timeseries",
    # Input models
    "SummaryConfig",
    "SummaryInput",
    "TimeseriesInput",
    # Output models
    "DashboardSummary",
    "TimeseriesOutput",
    # Ports
    "RecordSourcePort",
    # User agents
    "DeviceConfig",
    "DeviceInfo",
    "DeviceService",
    "DeviceType",
    "classify_user_agent",
    "create_device_service",
    "is_bot",
    # Referrers
    "Medium",
    "ReferrerConfig",
    "ReferrerInfo",
    "ReferrerService",
    "classify_referrer",
    "create_referrer_service",
    # Geo
    "GeoAnalytics",
    "GeoConfig",
    "GeoService",
    "create_geo_service",
    # Aggregation
    "AggregateConfig",
    "AggregateService",
    "BucketType",
    "WeekStart",
    "calculate_bucket_end",
    "calculate_bucket_start",
    "create_aggregate_service",
    # Metrics
    "AnomalyReport",
    "MetricsConfig",
    "MetricsService",
    "MetricsSummary",
    "create_metrics_service",
]
