"""Website traffic from GA4 for web apps."""

import structlog

from metrics_hub.exceptions import SourceHTTPError
from metrics_hub.ingestion.context import AppInfo, IngestionContext
from metrics_hub.ingestion.gcp import GA4Source, day_range
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.records import WebsiteTrafficRecord

logger = structlog.get_logger()

TRAFFIC_METRICS = [
    "sessions",
    "totalUsers",
    "newUsers",
    "screenPageViews",
    "averageSessionDuration",
    "bounceRate",
    "screenPageViewsPerSession",
]

CONVERSION_EVENTS = {
    "sign_up": "signups",
    "signup": "signups",
    "app_download": "app_downloads",
    "download_click": "app_downloads",
    "purchase": "purchases",
    "begin_checkout": "purchases",
}


def traffic_row(row: dict) -> dict:
    m = row["metrics"]
    return {
        "source": row["dimensions"][0] or "(direct)",
        "medium": row["dimensions"][1] or "(none)",
        "sessions": int(m[0]),
        "users": int(m[1]),
        "new_users": int(m[2]),
        "pageviews": int(m[3]),
        "avg_session_duration": float(m[4]),
        # GA4 reports bounce rate as a fraction
        "bounce_rate": float(m[5]) * 100,
        "pages_per_session": float(m[6]),
    }


def aggregate_traffic(rows: list[dict]) -> dict:
    """Sum counts and session-weight the averages."""
    total = {"sessions": 0, "users": 0, "new_users": 0, "pageviews": 0}
    for key in total:
        total[key] = sum(r[key] for r in rows)

    sessions = total["sessions"]
    for key in ("avg_session_duration", "bounce_rate", "pages_per_session"):
        weighted = sum(r[key] * r["sessions"] for r in rows)
        total[key] = weighted / sessions if sessions else 0.0
    return total


def merge_traffic_rows(rows: list[dict]) -> list[dict]:
    """Collapse rows whose source/medium normalise to the same pair."""
    groups: dict[tuple[str, str], list[dict]] = {}
    for row in rows:
        groups.setdefault((row["source"], row["medium"]), []).append(row)

    merged = []
    for (source, medium), group in groups.items():
        if len(group) == 1:
            merged.append(group[0])
        else:
            merged.append({"source": source, "medium": medium, **aggregate_traffic(group)})
    return merged


class WebsiteSource(GA4Source):
    """Traffic by source/medium plus an aggregate row per web app."""

    name = "website"
    display_name = "Website (GA4)"

    async def fetch_traffic(self, app: AppInfo, context: IngestionContext) -> list[dict]:
        rows = await self.run_report(
            app.ga4_property_id,
            {
                "dateRanges": day_range(context.date_str),
                "dimensions": [{"name": "sessionSource"}, {"name": "sessionMedium"}],
                "metrics": [{"name": name} for name in TRAFFIC_METRICS],
                "limit": 100,
                "orderBys": [{"metric": {"metricName": "sessions"}, "desc": True}],
            },
        )
        return merge_traffic_rows([traffic_row(row) for row in rows])

    async def fetch_conversions(self, app: AppInfo, context: IngestionContext) -> dict[str, int]:
        conversions = {"signups": 0, "app_downloads": 0, "purchases": 0}
        try:
            rows = await self.run_report(
                app.ga4_property_id,
                {
                    "dateRanges": day_range(context.date_str),
                    "dimensions": [{"name": "eventName"}],
                    "metrics": [{"name": "eventCount"}],
                    "dimensionFilter": {
                        "filter": {
                            "fieldName": "eventName",
                            "inListFilter": {"values": list(CONVERSION_EVENTS)},
                        }
                    },
                },
            )
        except SourceHTTPError as e:
            logger.debug("GA4 conversions unavailable", app=app.slug, error=str(e))
            return conversions

        for row in rows:
            key = CONVERSION_EVENTS.get(row["dimensions"][0])
            if key:
                conversions[key] += int(row["metrics"][0])
        return conversions

    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        web_apps = [app for app in context.apps if app.type == "web" and app.ga4_property_id]
        if not web_apps:
            return Empty("No web apps with a GA4 property")

        records = []
        warnings = []
        for app in web_apps:
            try:
                traffic = await self.fetch_traffic(app, context)
                conversions = await self.fetch_conversions(app, context)
            except SourceHTTPError as e:
                logger.warning("Skipping website", app=app.slug, error=str(e).split("\n")[0])
                warnings.append(f"{app.slug}: {e}")
                await self.pause()
                continue

            total = aggregate_traffic(traffic)
            records.append(
                WebsiteTrafficRecord(
                    app_id=app.id,
                    date=context.date,
                    source="",
                    medium="",
                    campaign="",
                    sessions=total["sessions"],
                    users=total["users"],
                    new_users=total["new_users"],
                    pageviews=total["pageviews"],
                    avg_session_duration_seconds=round(total["avg_session_duration"]),
                    bounce_rate=round(total["bounce_rate"], 2),
                    pages_per_session=round(total["pages_per_session"], 2),
                    **conversions,
                    raw_data={"total": total, "conversions": conversions},
                )
            )
            for row in traffic:
                records.append(
                    WebsiteTrafficRecord(
                        app_id=app.id,
                        date=context.date,
                        source=row["source"],
                        medium=row["medium"],
                        campaign="",
                        sessions=row["sessions"],
                        users=row["users"],
                        new_users=row["new_users"],
                        pageviews=row["pageviews"],
                        avg_session_duration_seconds=round(row["avg_session_duration"]),
                        bounce_rate=round(row["bounce_rate"], 2),
                        pages_per_session=round(row["pages_per_session"], 2),
                        raw_data=row,
                    )
                )

            await self.pause()

        return ok(records, warnings)
