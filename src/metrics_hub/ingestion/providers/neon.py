"""Neon serverless Postgres consumption."""

from datetime import datetime, time, timezone

import structlog

from metrics_hub.exceptions import SourceHTTPError
from metrics_hub.ingestion.context import IngestionContext, ProviderInfo
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.ingestion.providers.base import GB, ProviderCostSource
from metrics_hub.records import ProviderCostRecord

logger = structlog.get_logger()

PRICING = {
    "compute_per_hour": 0.0255,
    "storage_per_gb_month": 0.000164,
    "data_transfer_per_gb": 0.09,
    "written_data_per_gb": 0.096,
}


def project_cost(consumption: dict) -> dict[str, float]:
    """Cost components for one project's daily consumption."""
    compute_hours = (consumption.get("compute_time_seconds") or 0) / 3600
    storage_gb_hours = (consumption.get("synthetic_storage_size_bytes") or 0) / GB * 24
    transfer_gb = (consumption.get("data_transfer_bytes") or 0) / GB
    written_gb = (consumption.get("written_data_bytes") or 0) / GB
    return {
        "compute": compute_hours * PRICING["compute_per_hour"],
        "storage": storage_gb_hours * PRICING["storage_per_gb_month"],
        "data_transfer": transfer_gb * PRICING["data_transfer_per_gb"],
        "written_data": written_gb * PRICING["written_data_per_gb"],
    }


class NeonSource(ProviderCostSource):
    """One cost row summing every project's consumption for the day."""

    name = "neon"
    display_name = "Neon"
    provider_slug = "neon"
    BASE_URL = "https://console.neon.tech/api/v2"

    def is_configured(self) -> bool:
        return bool(self.settings.neon_api_key)

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.settings.neon_api_key}", "Accept": "application/json"}

    async def fetch_projects(self) -> list[dict]:
        data = await self._get_json(f"{self.BASE_URL}/projects", headers=self.headers)
        return data.get("projects", [])

    async def fetch_consumption(self, project_id: str, context: IngestionContext) -> dict | None:
        start = datetime.combine(context.date, time.min, tzinfo=timezone.utc)
        end = datetime.combine(context.date, time.max, tzinfo=timezone.utc)
        return await self._get_json(
            f"{self.BASE_URL}/projects/{project_id}/consumption",
            headers=self.headers,
            params={"from": start.isoformat(), "to": end.isoformat()},
            empty_statuses=(404,),
        )

    async def fetch_costs(self, context: IngestionContext, provider: ProviderInfo) -> FetchOutcome:
        projects = await self.fetch_projects()
        if not projects:
            return Empty("No Neon projects found")

        totals = {"compute": 0.0, "storage": 0.0, "data_transfer": 0.0, "written_data": 0.0}
        usage = {"compute_hours": 0.0, "storage_gb": 0.0, "data_transfer_gb": 0.0, "written_data_gb": 0.0}
        cost_by_project = {}
        warnings = []

        for project in projects:
            project_id = project["id"]
            try:
                consumption = await self.fetch_consumption(project_id, context)
            except SourceHTTPError as e:
                logger.warning("Neon consumption failed", project=project_id, error=str(e))
                warnings.append(f"{project_id}: {e}")
                await self.pause()
                continue

            if consumption:
                costs = project_cost(consumption)
                for key, value in costs.items():
                    totals[key] += value
                usage["compute_hours"] += (consumption.get("compute_time_seconds") or 0) / 3600
                usage["storage_gb"] += (consumption.get("synthetic_storage_size_bytes") or 0) / GB
                usage["data_transfer_gb"] += (consumption.get("data_transfer_bytes") or 0) / GB
                usage["written_data_gb"] += (consumption.get("written_data_bytes") or 0) / GB
                cost_by_project[project.get("name") or project_id] = round(sum(costs.values()), 4)
            await self.pause()

        record = ProviderCostRecord(
            provider_id=provider.id,
            app_id="",
            date=context.date,
            cost=round(sum(totals.values()), 4),
            usage_quantity=len(projects),
            usage_unit="projects",
            cost_breakdown={key: round(value, 4) for key, value in totals.items()},
            usage_breakdown={key: round(value, 4) for key, value in usage.items()},
            raw_data={"cost_by_project": cost_by_project, "project_count": len(projects)},
        )
        return ok([record], warnings)
