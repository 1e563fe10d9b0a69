"""Umami privacy analytics source."""

from datetime import datetime, time, timezone

import structlog

from metrics_hub.exceptions import SourceHTTPError
from metrics_hub.ingestion.base import SourceAdapter
from metrics_hub.ingestion.context import AppInfo, IngestionContext
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.records import UmamiStatsRecord

logger = structlog.get_logger()

BREAKDOWNS = {"url": "top_pages", "referrer": "top_referrers", "country": "top_countries", "browser": "top_browsers"}


def _value(stats: dict, key: str) -> int:
    # Older Umami versions wrap each stat as {"value": n, "prev": m}
    entry = stats.get(key, 0)
    if isinstance(entry, dict):
        entry = entry.get("value", 0)
    return int(entry or 0)


class UmamiSource(SourceAdapter):
    """One stats row per configured website with top-N breakdowns."""

    name = "umami"
    display_name = "Umami"
    request_delay = 0.2

    def is_configured(self) -> bool:
        return bool(self.settings.umami_api_token)

    def website_id_for(self, app: AppInfo) -> str | None:
        return self.settings.umami_website_ids.get(app.slug) or app.umami_website_id

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.settings.umami_api_token}", "Accept": "application/json"}

    async def fetch_website(self, app: AppInfo, website_id: str, context: IngestionContext) -> UmamiStatsRecord:
        start = datetime.combine(context.date, time.min, tzinfo=timezone.utc)
        end = datetime.combine(context.date, time.max, tzinfo=timezone.utc)
        window = {"startAt": int(start.timestamp() * 1000), "endAt": int(end.timestamp() * 1000)}
        base = f"{self.settings.umami_api_url.rstrip('/')}/api/websites/{website_id}"

        stats = await self._get_json(f"{base}/stats", headers=self.headers, params=window)

        breakdowns = {}
        for metric_type, field in BREAKDOWNS.items():
            items = await self._get_json(
                f"{base}/metrics",
                headers=self.headers,
                params={**window, "type": metric_type, "limit": 20},
            )
            breakdowns[field] = {item["x"] or "(none)": int(item["y"]) for item in items or []}

        visits = _value(stats, "visits")
        bounces = _value(stats, "bounces")
        total_time = _value(stats, "totaltime")

        return UmamiStatsRecord(
            app_id=app.id,
            date=context.date,
            website_id=website_id,
            pageviews=_value(stats, "pageviews"),
            visitors=_value(stats, "visitors"),
            visits=visits,
            bounce_rate=round(bounces / visits * 100, 2) if visits else 0,
            avg_visit_duration=round(total_time / visits) if visits else 0,
            **breakdowns,
            raw_data={"stats": stats},
        )

    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        targets = [(app, self.website_id_for(app)) for app in context.apps]
        targets = [(app, website_id) for app, website_id in targets if website_id]
        if not targets:
            return Empty("No Umami website IDs configured")

        records = []
        warnings = []
        for app, website_id in targets:
            try:
                records.append(await self.fetch_website(app, website_id, context))
            except SourceHTTPError as e:
                logger.warning("Umami website failed", app=app.slug, error=str(e))
                warnings.append(f"{app.slug}: {e}")
            await self.pause()

        return ok(records, warnings)
