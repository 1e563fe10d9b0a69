"""Canonical metric records.

Adapters emit these instead of ORM rows. Each record type names the table
it targets and the entity references that must be populated. On
construction any ``None`` passed for a non-nullable field is replaced by
the field's default, so dimension fields fall back to ``""`` and measures
fall back to ``0``.
"""

import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from metrics_hub.models import (
    DailyActiveUsers,
    DailyEmailMetrics,
    DailyFeatureUsage,
    DailyInstalls,
    DailyProviderCosts,
    DailyRevenue,
    DailySearchConsole,
    DailySubscriptions,
    DailyUmamiStats,
    DailyWebsiteTraffic,
)


class MetricRecord(BaseModel):
    """Base for all canonical records."""

    model_config = ConfigDict(extra="forbid")

    kind: ClassVar[str]
    table: ClassVar[type]
    # Entity references that may not be ""
    required: ClassVar[tuple[str, ...]] = ("app_id",)

    date: datetime.date
    raw_data: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _fill_placeholders(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for name, field in cls.model_fields.items():
            if field.is_required() or cleaned.get(name, 0) is not None:
                continue
            if field.default_factory is not None:
                cleaned[name] = field.default_factory()
            elif field.default is not None:
                cleaned[name] = field.default
        return cleaned

    @classmethod
    def natural_key_fields(cls) -> tuple[str, ...]:
        return cls.table.__natural_key__

    def natural_key(self) -> tuple:
        return tuple(getattr(self, name) for name in self.natural_key_fields())

    def missing_refs(self) -> list[str]:
        """Required entity references that are empty."""
        return [name for name in self.required if not getattr(self, name)]

    def to_row(self) -> dict[str, Any]:
        return self.model_dump()


class InstallsRecord(MetricRecord):
    kind = "installs"
    table = DailyInstalls
    required = ("app_id", "platform")

    app_id: str = ""
    platform: str = ""
    country: str = ""
    installs: int = 0
    uninstalls: int = 0
    updates: int = 0
    product_page_views: int = 0
    impressions: int = 0


class RevenueRecord(MetricRecord):
    kind = "revenue"
    table = DailyRevenue
    required = ("app_id", "platform", "currency")

    app_id: str = ""
    platform: str = ""
    country: str = ""
    currency: str = "USD"
    gross_revenue: float = 0
    net_revenue: float = 0
    refunds: float = 0
    iap_revenue: float = 0
    subscription_revenue: float = 0
    ad_revenue: float = 0
    transaction_count: int = 0
    paying_users: int = 0


class SubscriptionsRecord(MetricRecord):
    kind = "subscriptions"
    table = DailySubscriptions
    required = ("app_id", "platform")

    app_id: str = ""
    platform: str = ""
    product_id: str = ""
    active_subscriptions: int = 0
    active_trials: int = 0
    new_trials: int = 0
    trial_conversions: int = 0
    trial_cancellations: int = 0
    new_subscriptions: int = 0
    renewals: int = 0
    cancellations: int = 0
    expirations: int = 0
    reactivations: int = 0
    billing_retries: int = 0
    grace_period_entries: int = 0
    mrr: float = 0


class ActiveUsersRecord(MetricRecord):
    kind = "active_users"
    table = DailyActiveUsers
    required = ("app_id", "platform")

    app_id: str = ""
    platform: str = "all"
    dau: int = 0
    wau: int = 0
    mau: int = 0
    sessions: int = 0
    avg_session_duration_seconds: int = 0
    new_users: int = 0
    returning_users: int = 0
    d1_retention: float | None = None
    d7_retention: float | None = None
    d30_retention: float | None = None


class FeatureUsageRecord(MetricRecord):
    kind = "feature_usage"
    table = DailyFeatureUsage
    required = ("app_id", "platform", "feature_name")

    app_id: str = ""
    platform: str = "all"
    feature_name: str = ""
    unique_users: int = 0
    event_count: int = 0
    started_count: int = 0
    completed_count: int = 0


class ProviderCostRecord(MetricRecord):
    kind = "provider_costs"
    table = DailyProviderCosts
    required = ("provider_id",)

    provider_id: str = ""
    app_id: str = ""
    cost: float = 0
    currency: str = "USD"
    usage_quantity: float = 0
    usage_unit: str | None = None
    cost_breakdown: dict[str, float] = Field(default_factory=dict)
    usage_breakdown: dict[str, Any] = Field(default_factory=dict)


class WebsiteTrafficRecord(MetricRecord):
    kind = "website_traffic"
    table = DailyWebsiteTraffic

    app_id: str = ""
    source: str = ""
    medium: str = ""
    campaign: str = ""
    sessions: int = 0
    users: int = 0
    new_users: int = 0
    pageviews: int = 0
    avg_session_duration_seconds: int = 0
    bounce_rate: float = 0
    pages_per_session: float = 0
    signups: int = 0
    app_downloads: int = 0
    purchases: int = 0


class EmailMetricsRecord(MetricRecord):
    kind = "email_metrics"
    table = DailyEmailMetrics
    required = ("email_type",)

    app_id: str = ""
    email_type: str = ""
    received: int = 0
    sent: int = 0
    tickets_opened: int = 0
    tickets_closed: int = 0
    avg_response_time_minutes: int | None = None
    avg_resolution_time_minutes: int | None = None
    opens: int = 0
    clicks: int = 0
    unsubscribes: int = 0


class SearchConsoleRecord(MetricRecord):
    kind = "search_console"
    table = DailySearchConsole

    app_id: str = ""
    query: str = ""
    page: str = ""
    impressions: int = 0
    clicks: int = 0
    ctr: float = 0
    position: float = 0


class UmamiStatsRecord(MetricRecord):
    kind = "umami_stats"
    table = DailyUmamiStats
    required = ("app_id", "website_id")

    app_id: str = ""
    website_id: str = ""
    pageviews: int = 0
    visitors: int = 0
    visits: int = 0
    bounce_rate: float = 0
    avg_visit_duration: int = 0
    top_pages: dict[str, int] | None = None
    top_referrers: dict[str, int] | None = None
    top_countries: dict[str, int] | None = None
    top_browsers: dict[str, int] | None = None


RECORD_TYPES: dict[str, type[MetricRecord]] = {
    cls.kind: cls
    for cls in (
        InstallsRecord,
        RevenueRecord,
        SubscriptionsRecord,
        ActiveUsersRecord,
        FeatureUsageRecord,
        ProviderCostRecord,
        WebsiteTrafficRecord,
        EmailMetricsRecord,
        SearchConsoleRecord,
        UmamiStatsRecord,
    )
}
