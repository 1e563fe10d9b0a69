"""Brevo transactional email statistics."""

import structlog

from metrics_hub.exceptions import SourceHTTPError
from metrics_hub.ingestion.base import SourceAdapter
from metrics_hub.ingestion.context import IngestionContext
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.records import EmailMetricsRecord

logger = structlog.get_logger()


class BrevoSource(SourceAdapter):
    """One transactional-email row per app with a Brevo API key."""

    name = "brevo"
    display_name = "Brevo"
    request_delay = 0.2
    BASE_URL = "https://api.brevo.com/v3"

    def is_configured(self) -> bool:
        return bool(self.settings.brevo_api_keys)

    async def fetch_report(self, api_key: str, date_str: str) -> dict | None:
        data = await self._get_json(
            f"{self.BASE_URL}/smtp/statistics/reports",
            headers={"api-key": api_key, "Accept": "application/json"},
            params={"startDate": date_str, "endDate": date_str},
        )
        reports = data.get("reports") or []
        return reports[0] if reports else None

    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        records = []
        warnings = []
        for slug, api_key in self.settings.brevo_api_keys.items():
            app = context.app_by_slug(slug)
            if app is None:
                logger.warning("Brevo app not found", app=slug)
                warnings.append(f"{slug}: app not registered")
                continue

            try:
                report = await self.fetch_report(api_key, context.date_str)
            except SourceHTTPError as e:
                logger.warning("Brevo report failed", app=slug, error=str(e))
                warnings.append(f"{slug}: {e}")
                await self.pause()
                continue

            if report:
                records.append(
                    EmailMetricsRecord(
                        app_id=app.id,
                        date=context.date,
                        email_type="transactional",
                        sent=report.get("requests", 0),
                        received=report.get("delivered", 0),
                        opens=report.get("uniqueOpens", 0),
                        clicks=report.get("uniqueClicks", 0),
                        unsubscribes=report.get("unsubscribed", 0),
                        raw_data=report,
                    )
                )
                logger.info(
                    "Brevo stats",
                    app=slug,
                    sent=report.get("requests", 0),
                    opens=report.get("uniqueOpens", 0),
                )

            await self.pause()

        if not records and not warnings:
            return Empty(f"No Brevo activity on {context.date_str}")
        return ok(records, warnings)
