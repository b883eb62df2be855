from typing import Literal

from pydantic import BaseModel, Field


class UserAgentRules(BaseModel):
    bot_keywords: list[str]
    windows_versions: dict[str, str]  # NT token -> marketing name
    min_browser_versions: dict[str, int]
    browser_aliases: dict[str, str]

class ReferrerRules(BaseModel):
    search_engines: list[str]
    social_networks: list[str]
    search_params: list[str]
    source_aliases: dict[str, str]  # domain -> canonical source

class AggregationRules(BaseModel):
    week_start: Literal["sunday", "monday"]
    default_granularity: Literal["hour", "day", "week", "month", "year"]
    top_periods: int = Field(ge=0)

class EngagementRules(BaseModel):
    points_per_page_view: float = Field(ge=0)
    page_view_cap: float = Field(ge=0)
    points_per_minute: float = Field(ge=0)
    duration_cap: float = Field(ge=0)
    conversion_points: float = Field(ge=0)

class MetricsRules(BaseModel):
    anomaly_threshold: float = Field(ge=0)
    trending_min_growth: float
    engagement: EngagementRules
    duration_buckets: dict[str, float]  # label -> exclusive upper bound (seconds), ascending
    duration_overflow_label: str

class SummaryRules(BaseModel):
    exclude_bots: bool
    top_n: int = Field(ge=0)
    fill_gaps: bool
    rolling_window: int = Field(gt=0)
    current_host: str | None = None

class AnalyticsRules(BaseModel):
    user_agents: UserAgentRules | None = None
    referrers: ReferrerRules | None = None
    aggregation: AggregationRules | None = None
    metrics: MetricsRules | None = None
    summary: SummaryRules | None = None

class Rules(BaseModel):
    rules_version: str
    analytics: AnalyticsRules = Field(default_factory=AnalyticsRules)
