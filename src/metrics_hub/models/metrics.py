"""Canonical daily metric tables.

Every table carries a composite unique constraint on its natural key.
Natural-key columns are NOT NULL; "" stands for the aggregate or
not-applicable value so that repeated upserts match the same row.
"""

from sqlalchemy import JSON, Column, Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint

from metrics_hub.models.base import Base, new_id, utcnow


class MetricMixin:
    """Columns shared by every metric table."""

    id = Column(String(36), primary_key=True, default=new_id)
    date = Column(Date, nullable=False, index=True)
    raw_data = Column(JSON)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __natural_key__: tuple[str, ...] = ()


class DailyInstalls(MetricMixin, Base):
    __tablename__ = "daily_installs"
    __natural_key__ = ("app_id", "date", "platform", "country")
    __table_args__ = (UniqueConstraint(*__natural_key__, name="uq_daily_installs_key"),)

    app_id = Column(String(36), ForeignKey("apps.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(20), nullable=False)
    country = Column(String(2), nullable=False, default="")
    installs = Column(Integer, nullable=False, default=0)
    uninstalls = Column(Integer, nullable=False, default=0)
    updates = Column(Integer, nullable=False, default=0)
    product_page_views = Column(Integer, nullable=False, default=0)
    impressions = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<DailyInstalls(app_id={self.app_id}, date={self.date}, platform={self.platform}, installs={self.installs})>"


class DailyRevenue(MetricMixin, Base):
    __tablename__ = "daily_revenue"
    __natural_key__ = ("app_id", "date", "platform", "country", "currency")
    __table_args__ = (UniqueConstraint(*__natural_key__, name="uq_daily_revenue_key"),)

    app_id = Column(String(36), ForeignKey("apps.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(20), nullable=False)
    country = Column(String(2), nullable=False, default="")
    currency = Column(String(3), nullable=False, default="USD")
    gross_revenue = Column(Float, nullable=False, default=0)
    net_revenue = Column(Float, nullable=False, default=0)
    refunds = Column(Float, nullable=False, default=0)
    iap_revenue = Column(Float, nullable=False, default=0)
    subscription_revenue = Column(Float, nullable=False, default=0)
    ad_revenue = Column(Float, nullable=False, default=0)
    transaction_count = Column(Integer, nullable=False, default=0)
    paying_users = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<DailyRevenue(app_id={self.app_id}, date={self.date}, country={self.country}, gross={self.gross_revenue})>"


class DailySubscriptions(MetricMixin, Base):
    __tablename__ = "daily_subscriptions"
    __natural_key__ = ("app_id", "date", "platform", "product_id")
    __table_args__ = (UniqueConstraint(*__natural_key__, name="uq_daily_subscriptions_key"),)

    app_id = Column(String(36), ForeignKey("apps.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(20), nullable=False)
    product_id = Column(String(255), nullable=False, default="")
    active_subscriptions = Column(Integer, nullable=False, default=0)
    active_trials = Column(Integer, nullable=False, default=0)
    new_trials = Column(Integer, nullable=False, default=0)
    trial_conversions = Column(Integer, nullable=False, default=0)
    trial_cancellations = Column(Integer, nullable=False, default=0)
    new_subscriptions = Column(Integer, nullable=False, default=0)
    renewals = Column(Integer, nullable=False, default=0)
    cancellations = Column(Integer, nullable=False, default=0)
    expirations = Column(Integer, nullable=False, default=0)
    reactivations = Column(Integer, nullable=False, default=0)
    billing_retries = Column(Integer, nullable=False, default=0)
    grace_period_entries = Column(Integer, nullable=False, default=0)
    mrr = Column(Float, nullable=False, default=0)


class DailyActiveUsers(MetricMixin, Base):
    __tablename__ = "daily_active_users"
    __natural_key__ = ("app_id", "date", "platform")
    __table_args__ = (UniqueConstraint(*__natural_key__, name="uq_daily_active_users_key"),)

    app_id = Column(String(36), ForeignKey("apps.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(20), nullable=False)  # ios, android, web, all
    dau = Column(Integer, nullable=False, default=0)
    wau = Column(Integer, nullable=False, default=0)
    mau = Column(Integer, nullable=False, default=0)
    sessions = Column(Integer, nullable=False, default=0)
    avg_session_duration_seconds = Column(Integer, nullable=False, default=0)
    new_users = Column(Integer, nullable=False, default=0)
    returning_users = Column(Integer, nullable=False, default=0)
    # Percentages; NULL when the cohort report has no data
    d1_retention = Column(Float)
    d7_retention = Column(Float)
    d30_retention = Column(Float)


class DailyFeatureUsage(MetricMixin, Base):
    __tablename__ = "daily_feature_usage"
    __natural_key__ = ("app_id", "date", "platform", "feature_name")
    __table_args__ = (UniqueConstraint(*__natural_key__, name="uq_daily_feature_usage_key"),)

    app_id = Column(String(36), ForeignKey("apps.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(20), nullable=False)
    feature_name = Column(String(255), nullable=False)
    unique_users = Column(Integer, nullable=False, default=0)
    event_count = Column(Integer, nullable=False, default=0)
    started_count = Column(Integer, nullable=False, default=0)
    completed_count = Column(Integer, nullable=False, default=0)


class DailyProviderCosts(MetricMixin, Base):
    __tablename__ = "daily_provider_costs"
    __natural_key__ = ("provider_id", "app_id", "date")
    __table_args__ = (UniqueConstraint(*__natural_key__, name="uq_daily_provider_costs_key"),)

    provider_id = Column(String(36), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    # "" for costs shared across apps
    app_id = Column(String(36), nullable=False, default="")
    cost = Column(Float, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    usage_quantity = Column(Float, nullable=False, default=0)
    usage_unit = Column(String(50))
    cost_breakdown = Column(JSON, default=dict)
    usage_breakdown = Column(JSON, default=dict)

    def __repr__(self):
        return f"<DailyProviderCosts(provider_id={self.provider_id}, date={self.date}, cost={self.cost})>"


class DailyWebsiteTraffic(MetricMixin, Base):
    __tablename__ = "daily_website_traffic"
    __natural_key__ = ("app_id", "date", "source", "medium", "campaign")
    __table_args__ = (UniqueConstraint(*__natural_key__, name="uq_daily_website_traffic_key"),)

    app_id = Column(String(36), ForeignKey("apps.id", ondelete="CASCADE"), nullable=False)
    source = Column(String(100), nullable=False, default="")
    medium = Column(String(100), nullable=False, default="")
    campaign = Column(String(255), nullable=False, default="")
    sessions = Column(Integer, nullable=False, default=0)
    users = Column(Integer, nullable=False, default=0)
    new_users = Column(Integer, nullable=False, default=0)
    pageviews = Column(Integer, nullable=False, default=0)
    avg_session_duration_seconds = Column(Integer, nullable=False, default=0)
    bounce_rate = Column(Float, nullable=False, default=0)
    pages_per_session = Column(Float, nullable=False, default=0)
    signups = Column(Integer, nullable=False, default=0)
    app_downloads = Column(Integer, nullable=False, default=0)
    purchases = Column(Integer, nullable=False, default=0)


class DailyEmailMetrics(MetricMixin, Base):
    __tablename__ = "daily_email_metrics"
    __natural_key__ = ("app_id", "date", "email_type")
    __table_args__ = (UniqueConstraint(*__natural_key__, name="uq_daily_email_metrics_key"),)

    # "" for company-wide mailboxes
    app_id = Column(String(36), nullable=False, default="")
    email_type = Column(String(50), nullable=False)  # support, sales, newsletter, transactional, other
    received = Column(Integer, nullable=False, default=0)
    sent = Column(Integer, nullable=False, default=0)
    tickets_opened = Column(Integer, nullable=False, default=0)
    tickets_closed = Column(Integer, nullable=False, default=0)
    avg_response_time_minutes = Column(Integer)
    avg_resolution_time_minutes = Column(Integer)
    opens = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    unsubscribes = Column(Integer, nullable=False, default=0)


class DailySearchConsole(MetricMixin, Base):
    __tablename__ = "daily_search_console"
    __natural_key__ = ("app_id", "date", "query", "page")
    __table_args__ = (UniqueConstraint(*__natural_key__, name="uq_daily_search_console_key"),)

    app_id = Column(String(36), ForeignKey("apps.id", ondelete="CASCADE"), nullable=False)
    query = Column(String(500), nullable=False, default="")
    page = Column(String(500), nullable=False, default="")
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    ctr = Column(Float, nullable=False, default=0)
    position = Column(Float, nullable=False, default=0)


class DailyUmamiStats(MetricMixin, Base):
    __tablename__ = "daily_umami_stats"
    __natural_key__ = ("app_id", "date", "website_id")
    __table_args__ = (UniqueConstraint(*__natural_key__, name="uq_daily_umami_stats_key"),)

    app_id = Column(String(36), ForeignKey("apps.id", ondelete="CASCADE"), nullable=False)
    website_id = Column(String(100), nullable=False)
    pageviews = Column(Integer, nullable=False, default=0)
    visitors = Column(Integer, nullable=False, default=0)
    visits = Column(Integer, nullable=False, default=0)
    bounce_rate = Column(Float, nullable=False, default=0)
    avg_visit_duration = Column(Integer, nullable=False, default=0)
    top_pages = Column(JSON)
    top_referrers = Column(JSON)
    top_countries = Column(JSON)
    top_browsers = Column(JSON)
