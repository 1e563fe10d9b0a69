"""Google Search Console search analytics."""

from urllib.parse import quote

import structlog

from metrics_hub.exceptions import SourceHTTPError
from metrics_hub.ingestion.context import AppInfo, IngestionContext
from metrics_hub.ingestion.gcp import GoogleSource
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.records import SearchConsoleRecord

logger = structlog.get_logger()

TOP_ROWS = 50


def site_url_for(website_url: str) -> str:
    """Domain properties keep their ``sc-domain:`` prefix, URL prefixes end in "/"."""
    if website_url.startswith("sc-domain:") or website_url.endswith("/"):
        return website_url
    return website_url + "/"


class SearchConsoleSource(GoogleSource):
    """Aggregate, top-query and top-page rows per web app."""

    name = "search-console"
    display_name = "Search Console"
    scopes = ["https://www.googleapis.com/auth/webmasters.readonly"]
    BASE_URL = "https://www.googleapis.com/webmasters/v3/sites"

    async def query(self, site_url: str, context: IngestionContext, dimensions: list[str]) -> list[dict]:
        data = await self._post_json(
            f"{self.BASE_URL}/{quote(site_url, safe='')}/searchAnalytics/query",
            {
                "startDate": context.date_str,
                "endDate": context.date_str,
                "dimensions": dimensions,
                "rowLimit": TOP_ROWS,
                "dataState": "final",
            },
            headers=await self._auth_headers(),
        )
        return data.get("rows") or []

    async def fetch_app(self, app: AppInfo, context: IngestionContext) -> list[SearchConsoleRecord]:
        site_url = site_url_for(app.website_url)
        records = []

        def record(row: dict, query: str = "", page: str = "", row_type: str = "aggregate"):
            return SearchConsoleRecord(
                app_id=app.id,
                date=context.date,
                query=query,
                page=page,
                impressions=int(row.get("impressions", 0)),
                clicks=int(row.get("clicks", 0)),
                ctr=row.get("ctr", 0),
                position=row.get("position", 0),
                raw_data={"type": row_type},
            )

        aggregate = await self.query(site_url, context, [])
        if aggregate:
            records.append(record(aggregate[0]))

        for row in await self.query(site_url, context, ["query"]):
            records.append(record(row, query=row["keys"][0], row_type="query"))

        for row in await self.query(site_url, context, ["page"]):
            records.append(record(row, page=row["keys"][0], row_type="page"))

        return records

    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        web_apps = [app for app in context.apps if app.type == "web" and app.website_url]
        if not web_apps:
            return Empty("No web apps with a website URL")

        records = []
        warnings = []
        for app in web_apps:
            try:
                records.extend(await self.fetch_app(app, context))
            except SourceHTTPError as e:
                logger.warning("Search Console app failed", app=app.slug, error=str(e))
                warnings.append(f"{app.slug}: {e}")
            await self.pause()

        return ok(records, warnings)
