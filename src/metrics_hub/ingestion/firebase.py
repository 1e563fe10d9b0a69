"""Firebase / GA4 active users, retention and feature usage."""

from datetime import timedelta

import structlog

from metrics_hub.exceptions import SourceHTTPError
from metrics_hub.ingestion.context import AppInfo, IngestionContext
from metrics_hub.ingestion.gcp import GA4Source, day_range
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.records import ActiveUsersRecord, FeatureUsageRecord

logger = structlog.get_logger()

ACTIVE_USER_METRICS = [
    "activeUsers",
    "active7DayUsers",
    "active28DayUsers",
    "newUsers",
    "sessions",
    "averageSessionDuration",
]

# Automatically collected events that are not product features
SYSTEM_EVENT_PREFIXES = ("first_", "session_")
SYSTEM_EVENTS = {"page_view", "scroll", "click", "user_engagement", "screen_view", "app_remove", "os_update"}


def is_feature_event(event_name: str) -> bool:
    return bool(event_name) and not event_name.startswith(SYSTEM_EVENT_PREFIXES) and event_name not in SYSTEM_EVENTS


def retention_from_cohort(rows: list[dict]) -> dict[str, float | None]:
    """D1/D7/D30 retention percentages from a cohort report."""
    retention: dict[str, float | None] = {"d1_retention": None, "d7_retention": None, "d30_retention": None}
    for row in rows:
        day = int(row["dimensions"][1] or 0)
        active = int(row["metrics"][0] or 0)
        total = int(row["metrics"][1] or 0)
        key = f"d{day}_retention"
        if total > 0 and key in retention:
            retention[key] = round(active / total * 100, 2)
    return retention


class FirebaseSource(GA4Source):
    """Daily active users and custom-event usage per GA4 property."""

    name = "firebase"
    display_name = "Firebase"

    async def fetch_active_users(self, app: AppInfo, context: IngestionContext) -> dict | None:
        rows = await self.run_report(
            app.ga4_property_id,
            {
                "dateRanges": day_range(context.date_str),
                "metrics": [{"name": name} for name in ACTIVE_USER_METRICS],
            },
        )
        if not rows:
            return None
        values = rows[0]["metrics"]
        return {
            "dau": int(values[0]),
            "wau": int(values[1]),
            "mau": int(values[2]),
            "new_users": int(values[3]),
            "sessions": int(values[4]),
            "avg_session_duration": float(values[5]),
        }

    async def fetch_retention(self, app: AppInfo, context: IngestionContext) -> dict[str, float | None]:
        start = (context.date - timedelta(days=30)).isoformat()
        try:
            rows = await self.run_report(
                app.ga4_property_id,
                {
                    "dimensions": [{"name": "cohort"}, {"name": "cohortNthDay"}],
                    "metrics": [{"name": "cohortActiveUsers"}, {"name": "cohortTotalUsers"}],
                    "cohortSpec": {
                        "cohorts": [
                            {
                                "name": "cohort",
                                "dimension": "firstSessionDate",
                                "dateRange": {"startDate": start, "endDate": context.date_str},
                            }
                        ],
                        "cohortsRange": {"startOffset": 0, "endOffset": 30, "granularity": "DAILY"},
                    },
                },
            )
        except SourceHTTPError as e:
            logger.debug("GA4 retention unavailable", app=app.slug, error=str(e))
            rows = []
        return retention_from_cohort(rows)

    async def fetch_feature_usage(self, app: AppInfo, context: IngestionContext) -> list[dict]:
        rows = await self.run_report(
            app.ga4_property_id,
            {
                "dateRanges": day_range(context.date_str),
                "dimensions": [{"name": "eventName"}],
                "metrics": [{"name": "eventCount"}, {"name": "totalUsers"}],
            },
        )
        return [
            {"event_name": row["dimensions"][0], "event_count": int(row["metrics"][0]), "users": int(row["metrics"][1])}
            for row in rows
            if is_feature_event(row["dimensions"][0])
        ]

    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        ga4_apps = [app for app in context.apps if app.ga4_property_id]
        if not ga4_apps:
            return Empty("No apps with a GA4 property")

        records = []
        warnings = []
        for app in ga4_apps:
            try:
                active = await self.fetch_active_users(app, context)
                if active:
                    retention = await self.fetch_retention(app, context)
                    records.append(
                        ActiveUsersRecord(
                            app_id=app.id,
                            date=context.date,
                            platform="web" if app.type == "web" else "all",
                            dau=active["dau"],
                            wau=active["wau"],
                            mau=active["mau"],
                            new_users=active["new_users"],
                            returning_users=max(active["dau"] - active["new_users"], 0),
                            sessions=active["sessions"],
                            avg_session_duration_seconds=round(active["avg_session_duration"]),
                            **retention,
                            raw_data={"active_users": active, "retention": retention},
                        )
                    )

                for feature in await self.fetch_feature_usage(app, context):
                    records.append(
                        FeatureUsageRecord(
                            app_id=app.id,
                            date=context.date,
                            platform="all",
                            feature_name=feature["event_name"],
                            unique_users=feature["users"],
                            event_count=feature["event_count"],
                            raw_data=feature,
                        )
                    )
            except SourceHTTPError as e:
                logger.warning("Skipping GA4 app", app=app.slug, error=str(e).split("\n")[0])
                warnings.append(f"{app.slug}: {e}")

            await self.pause()

        return ok(records, warnings)
