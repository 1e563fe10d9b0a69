"""RevenueCat v2 metrics source."""

from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from metrics_hub.exceptions import SourceHTTPError
from metrics_hub.ingestion.base import SourceAdapter
from metrics_hub.ingestion.context import AppInfo, IngestionContext
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.records import RevenueRecord, SubscriptionsRecord

logger = structlog.get_logger()

# Store fees are not reported; estimate net at 85% of gross
NET_REVENUE_SHARE = 0.85

# Overview revenue covers the trailing 28 days
OVERVIEW_WINDOW_DAYS = 28

# Chart name -> daily metric key
CHARTS = {
    "revenue": "revenue",
    "actives": "active_subscribers",
    "trials": "active_trials",
    "customers_new": "new_customers",
    "trials_new": "new_trials",
    "trial_conversion": "trial_conversions",
}


def parse_chart_values(payload: dict[str, Any]) -> dict[str, float]:
    """Map ``[[unix_ts, value, ...], ...]`` chart rows to ``{YYYY-MM-DD: value}``."""
    values = {}
    for row in payload.get("values") or []:
        if not row:
            continue
        day = datetime.fromtimestamp(row[0], tz=timezone.utc).date().isoformat()
        values[day] = row[1] if len(row) > 1 and row[1] is not None else 0
    return values


class RevenueCatSource(SourceAdapter):
    """Subscription snapshots and subscription revenue per mobile platform."""

    name = "revenuecat"
    display_name = "RevenueCat"
    request_delay = 0.2
    BASE_URL = "https://api.revenuecat.com/v2"

    def is_configured(self) -> bool:
        return bool(self.settings.revenuecat_secret_api_key or self.settings.revenuecat_app_keys)

    def api_key_for(self, app: AppInfo) -> str | None:
        return self.settings.revenuecat_app_keys.get(app.slug) or self.settings.revenuecat_secret_api_key

    async def fetch_overview(self, project_id: str, api_key: str) -> dict[str, float]:
        data = await self._get_json(
            f"{self.BASE_URL}/projects/{project_id}/metrics/overview",
            headers={"Authorization": f"Bearer {api_key}"},
        )
        return {metric["id"]: metric.get("value") or 0 for metric in data.get("metrics", [])}

    async def fetch_charts(self, project_id: str, api_key: str, context: IngestionContext) -> dict[str, dict]:
        """Fetch the last week of daily chart values. Failed charts are skipped."""
        params = {
            "start_date": (context.date - timedelta(days=7)).isoformat(),
            "end_date": context.date_str,
            "resolution": "day",
            "realtime": "false",
        }
        charts = {}
        for chart_name, key in CHARTS.items():
            try:
                data = await self._get_json(
                    f"{self.BASE_URL}/projects/{project_id}/charts/{chart_name}",
                    headers={"Authorization": f"Bearer {api_key}"},
                    params=params,
                )
                charts[key] = parse_chart_values(data)
            except SourceHTTPError as e:
                logger.debug("RevenueCat chart unavailable", chart=chart_name, error=str(e))
            await self.pause()
        return charts

    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        rc_apps = [app for app in context.apps if app.revenuecat_app_id]
        if not rc_apps:
            return Empty("No apps with a RevenueCat project")

        records = []
        warnings = []
        for app in rc_apps:
            api_key = self.api_key_for(app)
            if not api_key:
                warnings.append(f"{app.slug}: no API key")
                continue

            try:
                overview = await self.fetch_overview(app.revenuecat_app_id, api_key)
                charts = await self.fetch_charts(app.revenuecat_app_id, api_key, context)
            except SourceHTTPError as e:
                logger.warning("RevenueCat app failed", app=app.slug, error=str(e))
                warnings.append(f"{app.slug}: {e}")
                await self.pause()
                continue

            records.extend(self.map_app(app, context, overview, charts))
            await self.pause()

        return ok(records, warnings)

    @staticmethod
    def map_app(app: AppInfo, context: IngestionContext, overview: dict, charts: dict) -> list:
        """Split one project's metrics evenly across the app's mobile platforms."""
        day = context.date_str

        def daily(key: str, fallback: float) -> float:
            series = charts.get(key)
            if series:
                return series.get(day, 0)
            return fallback

        revenue = daily("revenue", overview.get("revenue", 0) / OVERVIEW_WINDOW_DAYS)
        active_subs = daily("active_subscribers", overview.get("active_subscriptions", 0))
        active_trials = daily("active_trials", overview.get("active_trials", 0))
        new_customers = daily("new_customers", round(overview.get("new_customers", 0) / OVERVIEW_WINDOW_DAYS))
        new_trials = daily("new_trials", 0)
        conversions = daily("trial_conversions", 0)
        # Charts only have monthly MRR; the overview value is current
        mrr = overview.get("mrr", 0)
        data_source = "revenuecat_v2_charts" if charts else "revenuecat_v2_overview"

        platforms = [p for p in ("ios", "android") if p in app.platforms]
        if not platforms:
            return []
        n = len(platforms)

        records = []
        for platform in platforms:
            records.append(
                SubscriptionsRecord(
                    app_id=app.id,
                    date=context.date,
                    platform=platform,
                    product_id="",
                    active_subscriptions=round(active_subs / n),
                    active_trials=round(active_trials / n),
                    new_trials=round(new_trials / n),
                    trial_conversions=round(conversions / n),
                    new_subscriptions=round(new_customers / n),
                    mrr=mrr / n,
                    raw_data={"metrics_date": day, "overview": overview, "source": data_source},
                )
            )
            records.append(
                RevenueRecord(
                    app_id=app.id,
                    date=context.date,
                    platform=platform,
                    country="",
                    currency="USD",
                    gross_revenue=revenue / n,
                    net_revenue=revenue * NET_REVENUE_SHARE / n,
                    subscription_revenue=revenue / n,
                    raw_data={"source": data_source},
                )
            )
        return records
