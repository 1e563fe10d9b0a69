"""Supabase usage, priced into an estimated daily cost."""

import structlog

from metrics_hub.ingestion.context import IngestionContext, ProviderInfo
from metrics_hub.ingestion.outcome import FetchOutcome, ok
from metrics_hub.ingestion.providers.base import GB, ProviderCostSource
from metrics_hub.records import ProviderCostRecord

logger = structlog.get_logger()

# Pro plan overage rates
PRICING = {
    "db_per_gb_month": 0.125,
    "egress_per_gb": 0.09,
    "storage_per_gb_month": 0.021,
    "storage_egress_per_gb": 0.09,
    "mau_included": 50_000,
    "mau_overage_per_100k": 25.0,
    "function_invocations_included": 500_000,
    "function_invocations_per_million": 2.0,
}
DAILY_FRACTION = 1 / 30


def estimate_daily_cost(usage: dict) -> dict[str, float]:
    """Daily share of the monthly overage cost for each usage metric."""
    db_gb = (usage.get("db_size") or 0) / GB
    egress_gb = (usage.get("db_egress") or 0) / GB
    storage_gb = (usage.get("storage_size") or 0) / GB
    storage_egress_gb = (usage.get("storage_egress") or 0) / GB
    mau = usage.get("monthly_active_users") or 0
    invocations = usage.get("func_invocations") or 0

    mau_overage = max(mau - PRICING["mau_included"], 0)
    invocation_overage = max(invocations - PRICING["function_invocations_included"], 0)
    return {
        "database": db_gb * PRICING["db_per_gb_month"] * DAILY_FRACTION,
        "egress": egress_gb * PRICING["egress_per_gb"] * DAILY_FRACTION,
        "storage": storage_gb * PRICING["storage_per_gb_month"] * DAILY_FRACTION,
        "storage_egress": storage_egress_gb * PRICING["storage_egress_per_gb"] * DAILY_FRACTION,
        "auth": mau_overage / 100_000 * PRICING["mau_overage_per_100k"] * DAILY_FRACTION,
        "functions": invocation_overage / 1_000_000 * PRICING["function_invocations_per_million"] * DAILY_FRACTION,
    }


class SupabaseSource(ProviderCostSource):
    """Organisation usage from the Management API.

    Keys without usage access fall back to listing projects and record a
    zero-cost row so the day still shows up.
    """

    name = "supabase"
    display_name = "Supabase"
    provider_slug = "supabase"
    BASE_URL = "https://api.supabase.com/v1"

    def is_configured(self) -> bool:
        return bool(self.settings.supabase_management_key)

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.settings.supabase_management_key}"}

    async def fetch_costs(self, context: IngestionContext, provider: ProviderInfo) -> FetchOutcome:
        usage = await self._get_json(f"{self.BASE_URL}/usage", headers=self.headers, empty_statuses=(403, 404))

        if usage is None:
            projects = await self._get_json(f"{self.BASE_URL}/projects", headers=self.headers)
            logger.info("Supabase usage unavailable, recording projects only", projects=len(projects or []))
            record = ProviderCostRecord(
                provider_id=provider.id,
                app_id="",
                date=context.date,
                cost=0,
                usage_quantity=len(projects or []),
                usage_unit="projects",
                raw_data={"projects": [p.get("name") for p in projects or []], "note": "usage API not available"},
            )
            return ok([record], ["usage API not available, recorded zero cost"])

        costs = estimate_daily_cost(usage)
        record = ProviderCostRecord(
            provider_id=provider.id,
            app_id="",
            date=context.date,
            cost=round(sum(costs.values()), 4),
            usage_quantity=usage.get("monthly_active_users") or 0,
            usage_unit="mau",
            cost_breakdown={key: round(value, 4) for key, value in costs.items()},
            usage_breakdown={
                "db_size_gb": round((usage.get("db_size") or 0) / GB, 4),
                "db_egress_gb": round((usage.get("db_egress") or 0) / GB, 4),
                "storage_size_gb": round((usage.get("storage_size") or 0) / GB, 4),
                "func_invocations": usage.get("func_invocations") or 0,
                "monthly_active_users": usage.get("monthly_active_users") or 0,
            },
            raw_data=usage,
        )
        return ok([record])
