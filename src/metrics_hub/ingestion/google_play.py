"""Google Play Console reports exported to Cloud Storage."""

import csv
import io
import zipfile
from collections import defaultdict
from urllib.parse import quote

import structlog

from metrics_hub.exceptions import SourceHTTPError
from metrics_hub.ingestion.context import IngestionContext
from metrics_hub.ingestion.gcp import GoogleSource
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.records import InstallsRecord, RevenueRecord

logger = structlog.get_logger()

# Google keeps 15% of subscription and most IAP revenue for small developers
NET_REVENUE_SHARE = 0.85


def read_csv_text(payload: bytes) -> list[dict[str, str]]:
    """Decode a Play report; install stats are UTF-16, sales are UTF-8."""
    if payload[:2] in (b"\xff\xfe", b"\xfe\xff"):
        text = payload.decode("utf-16")
    else:
        text = payload.decode("utf-8-sig")
    return [
        {key.strip(): (value or "").strip() for key, value in row.items() if key}
        for row in csv.DictReader(io.StringIO(text))
    ]


def read_zipped_csv(payload: bytes) -> list[dict[str, str]]:
    rows = []
    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        for member in archive.namelist():
            if member.endswith(".csv"):
                rows.extend(read_csv_text(archive.read(member)))
    return rows


def _number(value: str) -> float:
    try:
        return float((value or "0").replace(",", ""))
    except ValueError:
        return 0.0


class GooglePlaySource(GoogleSource):
    """Installs per country from the monthly stats CSV and revenue from the sales report."""

    name = "google-play"
    display_name = "Google Play"
    request_delay = 0.1
    scopes = ["https://www.googleapis.com/auth/devstorage.read_only"]
    STORAGE_URL = "https://storage.googleapis.com/storage/v1/b/{bucket}/o/{object}"

    def service_account_json(self) -> str | None:
        return self.settings.google_play_service_account_json

    def is_configured(self) -> bool:
        return bool(self.service_account_json() and self.settings.google_play_reports_bucket)

    async def download(self, object_name: str) -> bytes | None:
        """Download a report object. None when it does not exist yet."""
        url = self.STORAGE_URL.format(
            bucket=self.settings.google_play_reports_bucket,
            object=quote(object_name, safe=""),
        )
        response = await self._request(
            "GET", url, headers=await self._auth_headers(), params={"alt": "media"}, empty_statuses=(404,)
        )
        return None if response is None else response.content

    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        android_apps = [app for app in context.apps_on("android") if app.google_package_name]
        if not android_apps:
            return Empty("No Android apps with a package name")

        month = context.date.strftime("%Y%m")
        sales_payload = await self.download(f"sales/salesreport_{month}.zip")
        sales_rows = read_zipped_csv(sales_payload) if sales_payload else []

        records = []
        warnings = []
        for app in android_apps:
            package = app.google_package_name
            try:
                payload = await self.download(f"stats/installs/installs_{package}_{month}_country.csv")
                if payload is not None:
                    records.extend(self._install_records(app.id, context, read_csv_text(payload)))
            except SourceHTTPError as e:
                logger.warning("Google Play installs failed", app=app.slug, error=str(e))
                warnings.append(f"{app.slug}: {e}")

            app_sales = [r for r in sales_rows if r.get("Product ID") == package]
            records.extend(self._revenue_records(app.id, context, app_sales))

            await self.pause()

        if not records and not warnings and sales_payload is None:
            return Empty(f"Play reports for {month} not yet exported")

        return ok(records, warnings, sales_rows=len(sales_rows))

    @staticmethod
    def _install_records(app_id: str, context: IngestionContext, rows: list[dict]) -> list[InstallsRecord]:
        records = []
        for row in rows:
            if row.get("Date") != context.date_str:
                continue
            records.append(
                InstallsRecord(
                    app_id=app_id,
                    date=context.date,
                    platform="android",
                    country=row.get("Country", ""),
                    installs=int(_number(row.get("Daily User Installs", "0"))),
                    uninstalls=int(_number(row.get("Daily User Uninstalls", "0"))),
                    updates=int(_number(row.get("Daily Device Upgrades", "0"))),
                    raw_data={"source": "play_stats", "active_device_installs": row.get("Active Device Installs")},
                )
            )
        return records

    @staticmethod
    def _revenue_records(app_id: str, context: IngestionContext, rows: list[dict]) -> list[RevenueRecord]:
        groups: dict[tuple[str, str], dict[str, float]] = defaultdict(
            lambda: {"gross": 0.0, "refunds": 0.0, "subs": 0.0, "iap": 0.0, "transactions": 0}
        )
        for row in rows:
            if row.get("Order Charged Date") != context.date_str:
                continue
            key = (row.get("Country of Buyer", ""), row.get("Currency of Sale") or "USD")
            amount = _number(row.get("Charged Amount", "0"))
            bucket = groups[key]
            if row.get("Financial Status", "").lower() == "refund":
                bucket["refunds"] += abs(amount)
                continue
            bucket["gross"] += amount
            bucket["transactions"] += 1
            if row.get("Product Type", "").lower() == "subscription":
                bucket["subs"] += amount
            else:
                bucket["iap"] += amount

        return [
            RevenueRecord(
                app_id=app_id,
                date=context.date,
                platform="android",
                country=country,
                currency=currency,
                gross_revenue=round(t["gross"], 2),
                net_revenue=round((t["gross"] - t["refunds"]) * NET_REVENUE_SHARE, 2),
                refunds=round(t["refunds"], 2),
                subscription_revenue=round(t["subs"], 2),
                iap_revenue=round(t["iap"], 2),
                transaction_count=int(t["transactions"]),
                raw_data={"source": "play_sales_report"},
            )
            for (country, currency), t in sorted(groups.items())
        ]
