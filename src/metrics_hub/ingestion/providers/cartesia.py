"""Cartesia text-to-speech usage."""

from collections import defaultdict

import structlog

from metrics_hub.ingestion.context import IngestionContext, ProviderInfo
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.ingestion.providers.base import ProviderCostSource
from metrics_hub.records import ProviderCostRecord

logger = structlog.get_logger()

COST_PER_CHARACTER = 0.00015


class CartesiaSource(ProviderCostSource):
    name = "cartesia"
    display_name = "Cartesia"
    provider_slug = "cartesia"
    BASE_URL = "https://api.cartesia.ai"
    API_VERSION = "2024-06-10"

    def is_configured(self) -> bool:
        return bool(self.settings.cartesia_api_key)

    async def fetch_costs(self, context: IngestionContext, provider: ProviderInfo) -> FetchOutcome:
        data = await self._get_json(
            f"{self.BASE_URL}/usage",
            headers={"X-API-Key": self.settings.cartesia_api_key, "Cartesia-Version": self.API_VERSION},
            params={"start_date": context.date_str, "end_date": context.date_str},
            empty_statuses=(404,),
        )
        if data is None:
            return Empty("Cartesia usage endpoint not available")

        characters = 0
        by_model: dict[str, int] = defaultdict(int)
        for item in data.get("usage", []):
            count = item.get("characters") or item.get("total_characters") or 0
            characters += count
            by_model[item.get("model_id") or "unknown"] += count

        if not data.get("usage"):
            characters = data.get("total_characters", 0)

        cost = characters * COST_PER_CHARACTER
        logger.info("Cartesia usage", characters=characters, cost=round(cost, 4))

        record = ProviderCostRecord(
            provider_id=provider.id,
            app_id="",
            date=context.date,
            cost=round(cost, 4),
            usage_quantity=characters,
            usage_unit="characters",
            cost_breakdown={model: round(count * COST_PER_CHARACTER, 4) for model, count in by_model.items()}
            or {"text_to_speech": round(cost, 4)},
            usage_breakdown={"total_characters": characters, **by_model},
            raw_data=data,
        )
        return ok([record])
