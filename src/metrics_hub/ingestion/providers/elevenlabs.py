"""ElevenLabs text-to-speech usage."""

from collections import Counter
from datetime import datetime, time, timezone

import structlog

from metrics_hub.exceptions import SourceError
from metrics_hub.ingestion.context import IngestionContext, ProviderInfo
from metrics_hub.ingestion.outcome import FetchOutcome, ok
from metrics_hub.ingestion.providers.base import ProviderCostSource
from metrics_hub.records import ProviderCostRecord

logger = structlog.get_logger()

# Pay-as-you-go rate
COST_PER_CHARACTER = 0.00018


class ElevenLabsSource(ProviderCostSource):
    """Characters generated on the day, from history or the subscription counter."""

    name = "elevenlabs"
    display_name = "ElevenLabs"
    provider_slug = "elevenlabs"
    BASE_URL = "https://api.elevenlabs.io/v1"

    def is_configured(self) -> bool:
        return bool(self.settings.elevenlabs_api_key)

    @property
    def headers(self) -> dict[str, str]:
        return {"xi-api-key": self.settings.elevenlabs_api_key}

    async def fetch_history(self, context: IngestionContext) -> list[dict]:
        """History items created on the target day. Pages run newest first."""
        start = int(datetime.combine(context.date, time.min, tzinfo=timezone.utc).timestamp())
        end = int(datetime.combine(context.date, time.max, tzinfo=timezone.utc).timestamp())

        items = []
        params: dict = {"page_size": 100}
        while True:
            data = await self._get_json(f"{self.BASE_URL}/history", headers=self.headers, params=params)
            history = data.get("history", [])
            items.extend(item for item in history if start <= item.get("date_unix", 0) <= end)

            oldest = history[-1] if history else None
            if oldest is None or oldest.get("date_unix", 0) < start or not data.get("has_more"):
                return items
            params = {"page_size": 100, "start_after_history_item_id": data.get("last_history_item_id")}
            await self.pause()

    async def fetch_subscription(self) -> dict:
        return await self._get_json(f"{self.BASE_URL}/user/subscription", headers=self.headers)

    async def fetch_costs(self, context: IngestionContext, provider: ProviderInfo) -> FetchOutcome:
        warnings = []
        try:
            history = await self.fetch_history(context)
        except SourceError as e:
            # History needs the speech_history_read permission
            logger.warning("ElevenLabs history unavailable, using subscription data", error=str(e))
            warnings.append(f"history unavailable: {e}")
            history = None

        if history is not None:
            by_voice: Counter = Counter()
            for item in history:
                change = (item.get("character_count_change_to") or 0) - (item.get("character_count_change_from") or 0)
                by_voice[item.get("voice_name") or item.get("voice_id") or "unknown"] += change
            characters = sum(by_voice.values())
            usage_breakdown = {"total_characters": characters, "requests": len(history), **by_voice}
            raw_data = {"source": "history", "history_count": len(history), "voices_used": sorted(by_voice)}
        else:
            stats = await self.fetch_subscription()
            characters = stats.get("character_count", 0)
            usage_breakdown = {"total_characters": characters, "character_limit": stats.get("character_limit", 0)}
            raw_data = {
                "source": "subscription",
                "character_count": characters,
                "character_limit": stats.get("character_limit"),
                "next_reset_unix": stats.get("next_character_count_reset_unix"),
            }

        cost = characters * COST_PER_CHARACTER
        record = ProviderCostRecord(
            provider_id=provider.id,
            app_id="",
            date=context.date,
            cost=round(cost, 4),
            usage_quantity=characters,
            usage_unit="characters",
            cost_breakdown={"text_to_speech": round(cost, 4)},
            usage_breakdown=usage_breakdown,
            raw_data=raw_data,
        )
        return ok([record], warnings)
