"""Google Cloud spend from the BigQuery billing export."""

from collections import defaultdict

import structlog

from metrics_hub.ingestion.context import IngestionContext, ProviderInfo
from metrics_hub.ingestion.gcp import GoogleSource
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.ingestion.providers.base import ProviderCostSource
from metrics_hub.records import ProviderCostRecord

logger = structlog.get_logger()

BILLING_QUERY = """
SELECT service.description AS service, sku.description AS sku,
       SUM(cost) + SUM(IFNULL((SELECT SUM(c.amount) FROM UNNEST(credits) c), 0)) AS cost,
       SUM(usage.amount) AS usage_amount, ANY_VALUE(currency) AS currency
FROM `{table}`
WHERE DATE(usage_start_time) = @day
GROUP BY service, sku
"""


class GoogleCloudSource(GoogleSource, ProviderCostSource):
    """Net cost per service and SKU, read with BigQuery ``jobs.query``."""

    name = "google-cloud"
    display_name = "Google Cloud"
    provider_slug = "google_cloud"
    scopes = ["https://www.googleapis.com/auth/bigquery.readonly"]
    BASE_URL = "https://bigquery.googleapis.com/bigquery/v2"

    def is_configured(self) -> bool:
        return bool(
            self.service_account_json()
            and self.settings.google_cloud_project
            and self.settings.google_cloud_billing_dataset
        )

    @property
    def billing_table(self) -> str:
        return f"{self.settings.google_cloud_project}.{self.settings.google_cloud_billing_dataset}.gcp_billing_export_v1_*"

    async def query_billing(self, context: IngestionContext) -> list[dict]:
        data = await self._post_json(
            f"{self.BASE_URL}/projects/{self.settings.google_cloud_project}/queries",
            {
                "query": BILLING_QUERY.format(table=self.billing_table),
                "useLegacySql": False,
                "parameterMode": "NAMED",
                "queryParameters": [
                    {"name": "day", "parameterType": {"type": "DATE"}, "parameterValue": {"value": context.date_str}}
                ],
                "timeoutMs": int(self.settings.http_timeout * 1000),
            },
            headers=await self._auth_headers(),
        )
        fields = [f["name"] for f in data.get("schema", {}).get("fields", [])]
        return [dict(zip(fields, (cell.get("v") for cell in row.get("f", [])))) for row in data.get("rows") or []]

    async def fetch_costs(self, context: IngestionContext, provider: ProviderInfo) -> FetchOutcome:
        rows = await self.query_billing(context)
        if not rows:
            return Empty(f"No billing export rows for {context.date_str}")

        by_service: dict[str, float] = defaultdict(float)
        by_sku = {}
        for row in rows:
            cost = float(row.get("cost") or 0)
            by_service[row.get("service") or "unknown"] += cost
            by_sku[f"{row.get('service')}/{row.get('sku')}"] = round(float(row.get("usage_amount") or 0), 4)

        total = sum(by_service.values())
        logger.info("Google Cloud billing", services=len(by_service), cost=round(total, 4))

        record = ProviderCostRecord(
            provider_id=provider.id,
            app_id="",
            date=context.date,
            cost=round(total, 4),
            currency=rows[0].get("currency") or "USD",
            usage_quantity=len(rows),
            usage_unit="skus",
            cost_breakdown={service: round(cost, 4) for service, cost in by_service.items()},
            usage_breakdown=by_sku,
            raw_data={"row_count": len(rows)},
        )
        return ok([record])
