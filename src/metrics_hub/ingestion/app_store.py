"""App Store Connect sales report source."""

import csv
import gzip
import io
import time
from collections import defaultdict
from typing import Any

import structlog
from google.auth import jwt
from google.auth.crypt import es256

from metrics_hub.ingestion.base import SourceAdapter
from metrics_hub.ingestion.context import IngestionContext
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.ingestion.tokens import TokenCache
from metrics_hub.records import InstallsRecord, RevenueRecord

logger = structlog.get_logger()

# Apple caps token lifetime at 20 minutes
TOKEN_LIFETIME = 20 * 60

# Product type identifiers: 1* first downloads, 7* updates (F prefix for Mac)
INSTALL_TYPE_PREFIXES = ("1", "F1")
UPDATE_TYPE_PREFIXES = ("7", "F7")


def parse_sales_report(payload: bytes) -> list[dict[str, Any]]:
    """Parse a (possibly gzipped) tab-separated sales report."""
    if payload[:2] == b"\x1f\x8b":
        payload = gzip.decompress(payload)
    text = payload.decode("utf-8-sig")

    rows = []
    for row in csv.DictReader(io.StringIO(text), delimiter="\t"):
        if not any(row.values()):
            continue
        parsed = {key.strip(): (value or "").strip() for key, value in row.items() if key}
        for field in ("Units", "Developer Proceeds", "Customer Price"):
            try:
                parsed[field] = float(parsed.get(field) or 0)
            except ValueError:
                parsed[field] = 0.0
        rows.append(parsed)
    return rows


def classify_product_type(product_type: str) -> str:
    """Return "install", "update" or "other" for a product type identifier."""
    if product_type.startswith(UPDATE_TYPE_PREFIXES):
        return "update"
    if product_type.startswith(INSTALL_TYPE_PREFIXES):
        return "install"
    return "other"


class AppStoreSource(SourceAdapter):
    """Installs and revenue from the daily App Store Connect sales summary."""

    name = "app-store"
    display_name = "App Store Connect"
    BASE_URL = "https://api.appstoreconnect.apple.com/v1"

    def __init__(self, settings, client=None, tokens: TokenCache | None = None, **kwargs):
        super().__init__(settings, client, **kwargs)
        self.tokens = tokens or TokenCache(self._generate_token)

    def is_configured(self) -> bool:
        s = self.settings
        return all(
            (
                s.app_store_connect_key_id,
                s.app_store_connect_issuer_id,
                s.app_store_connect_private_key,
                s.app_store_connect_vendor_number,
            )
        )

    def _generate_token(self) -> tuple[str, float]:
        now = int(time.time())
        expires_at = now + TOKEN_LIFETIME
        signer = es256.ES256Signer.from_string(
            self.settings.app_store_connect_private_key,
            key_id=self.settings.app_store_connect_key_id,
        )
        payload = {
            "iss": self.settings.app_store_connect_issuer_id,
            "iat": now,
            "exp": expires_at,
            "aud": "appstoreconnect-v1",
        }
        token = jwt.encode(signer, payload)
        return token.decode("utf-8"), float(expires_at)

    async def download_sales_report(self, report_date: str) -> list[dict[str, Any]] | None:
        """Fetch the daily summary. None when Apple has not published it yet."""
        params = {
            "filter[reportType]": "SALES",
            "filter[reportSubType]": "SUMMARY",
            "filter[frequency]": "DAILY",
            "filter[reportDate]": report_date,
            "filter[vendorNumber]": self.settings.app_store_connect_vendor_number,
        }
        headers = {
            "Authorization": f"Bearer {self.tokens.get_token()}",
            "Accept": "application/a-gzip",
        }
        response = await self._request(
            "GET", f"{self.BASE_URL}/salesReports", headers=headers, params=params, empty_statuses=(404,)
        )
        if response is None:
            return None
        return parse_sales_report(response.content)

    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        ios_apps = [app for app in context.apps_on("ios") if app.apple_app_id]
        if not ios_apps:
            return Empty("No iOS apps with an App Store id")

        rows = await self.download_sales_report(context.date_str)
        if rows is None:
            return Empty(f"Sales report not yet available for {context.date_str}")

        records = []
        for app in ios_apps:
            app_rows = [r for r in rows if r.get("Apple Identifier") == app.apple_app_id]
            skus = {r.get("SKU") for r in app_rows if r.get("SKU")}
            # In-app purchases reference the app through its SKU
            iap_rows = [r for r in rows if skus and r.get("Parent Identifier") in skus]

            records.extend(self._install_records(app.id, context, app_rows))
            records.extend(self._revenue_records(app.id, context, app_rows + iap_rows))

            logger.info(
                "App Store rows mapped",
                app=app.slug,
                app_rows=len(app_rows),
                iap_rows=len(iap_rows),
            )

        return ok(records, rows=len(rows))

    @staticmethod
    def _install_records(app_id: str, context: IngestionContext, rows: list[dict]) -> list[InstallsRecord]:
        by_country: dict[str, dict[str, int]] = defaultdict(lambda: {"installs": 0, "updates": 0})
        for row in rows:
            kind = classify_product_type(row.get("Product Type Identifier", ""))
            if kind == "other":
                continue
            units = int(row["Units"])
            if units <= 0:
                continue
            by_country[row.get("Country Code", "")][f"{kind}s"] += units

        return [
            InstallsRecord(
                app_id=app_id,
                date=context.date,
                platform="ios",
                country=country,
                installs=counts["installs"],
                updates=counts["updates"],
                raw_data={"source": "sales_report", **counts},
            )
            for country, counts in sorted(by_country.items())
        ]

    @staticmethod
    def _revenue_records(app_id: str, context: IngestionContext, rows: list[dict]) -> list[RevenueRecord]:
        groups: dict[tuple[str, str], list[dict]] = defaultdict(list)
        for row in rows:
            if not row["Developer Proceeds"]:
                continue
            currency = row.get("Currency of Proceeds") or "USD"
            groups[(row.get("Country Code", ""), currency)].append(row)

        records = []
        for (country, currency), group in sorted(groups.items()):
            gross = net = refunds = subs = iap = 0.0
            transactions = 0
            for row in group:
                units = row["Units"]
                proceeds = units * row["Developer Proceeds"]
                if units < 0:
                    refunds += abs(proceeds)
                    continue
                # Customer price is only comparable when paid in the proceeds currency
                if row.get("Customer Currency") == currency:
                    gross += units * row["Customer Price"]
                else:
                    gross += proceeds
                net += proceeds
                transactions += int(units)
                if row.get("Subscription"):
                    subs += proceeds
                else:
                    iap += proceeds

            records.append(
                RevenueRecord(
                    app_id=app_id,
                    date=context.date,
                    platform="ios",
                    country=country,
                    currency=currency,
                    gross_revenue=round(gross, 2),
                    net_revenue=round(net - refunds, 2),
                    refunds=round(refunds, 2),
                    iap_revenue=round(iap, 2),
                    subscription_revenue=round(subs, 2),
                    transaction_count=transactions,
                    raw_data={"source": "sales_report", "rows": len(group)},
                )
            )
        return records
