"""Anthropic API spend from the Admin usage report."""

from collections import defaultdict
from datetime import datetime, time, timedelta, timezone

import structlog

from metrics_hub.ingestion.context import IngestionContext, ProviderInfo
from metrics_hub.ingestion.outcome import Empty, FetchOutcome, ok
from metrics_hub.ingestion.providers.base import ProviderCostSource
from metrics_hub.records import ProviderCostRecord

logger = structlog.get_logger()

# USD per 1M tokens (input, output); first substring match wins
MODEL_PRICING = [
    ("claude-opus-4", (15.0, 75.0)),
    ("claude-sonnet-4", (3.0, 15.0)),
    ("claude-3-7-sonnet", (3.0, 15.0)),
    ("claude-3-5-sonnet", (3.0, 15.0)),
    ("claude-3-5-haiku", (0.8, 4.0)),
    ("claude-3-opus", (15.0, 75.0)),
    ("claude-3-sonnet", (3.0, 15.0)),
    ("claude-3-haiku", (0.25, 1.25)),
]
DEFAULT_PRICING = (3.0, 15.0)

CACHE_WRITE_MULTIPLIER = 1.25
CACHE_READ_MULTIPLIER = 0.1


def pricing_for(model: str) -> tuple[float, float]:
    model = model.lower()
    for prefix, pricing in MODEL_PRICING:
        if prefix in model:
            return pricing
    return DEFAULT_PRICING


def token_cost(model: str, input_tokens: int, output_tokens: int, cache_write: int = 0, cache_read: int = 0) -> float:
    input_price, output_price = pricing_for(model)
    billed_input = input_tokens + cache_write * CACHE_WRITE_MULTIPLIER + cache_read * CACHE_READ_MULTIPLIER
    return (billed_input * input_price + output_tokens * output_price) / 1_000_000


class AnthropicSource(ProviderCostSource):
    """Token usage per model, priced from the published per-token rates."""

    name = "anthropic"
    display_name = "Anthropic"
    provider_slug = "anthropic"
    BASE_URL = "https://api.anthropic.com/v1/organizations/usage_report/messages"

    def is_configured(self) -> bool:
        return bool(self.settings.anthropic_admin_api_key)

    async def fetch_usage(self, context: IngestionContext) -> list[dict] | None:
        """All result rows for the day, or None when the report is unavailable."""
        start = datetime.combine(context.date, time.min, tzinfo=timezone.utc)
        params = {
            "starting_at": start.isoformat().replace("+00:00", "Z"),
            "ending_at": (start + timedelta(days=1)).isoformat().replace("+00:00", "Z"),
            "bucket_width": "1d",
            "group_by[]": "model",
        }
        headers = {
            "x-api-key": self.settings.anthropic_admin_api_key,
            "anthropic-version": "2023-06-01",
        }

        results = []
        while True:
            # Accounts without admin access get 403/404
            data = await self._get_json(self.BASE_URL, headers=headers, params=params, empty_statuses=(403, 404))
            if data is None:
                return None
            for bucket in data.get("data", []):
                results.extend(bucket.get("results", []))
            if not data.get("has_more") or not data.get("next_page"):
                return results
            params = {**params, "page": data["next_page"]}
            await self.pause()

    async def fetch_costs(self, context: IngestionContext, provider: ProviderInfo) -> FetchOutcome:
        usage = await self.fetch_usage(context)
        if usage is None:
            return Empty("Anthropic usage report not available for this key")

        by_model: dict[str, dict[str, float]] = defaultdict(lambda: {"input": 0, "output": 0, "cost": 0.0})
        for row in usage:
            model = row.get("model") or "unknown"
            cache_creation = row.get("cache_creation") or {}
            cache_write = sum(v or 0 for v in cache_creation.values())
            cache_read = row.get("cache_read_input_tokens") or 0
            input_tokens = row.get("uncached_input_tokens") or 0
            output_tokens = row.get("output_tokens") or 0

            totals = by_model[model]
            totals["input"] += input_tokens + cache_write + cache_read
            totals["output"] += output_tokens
            totals["cost"] += token_cost(model, input_tokens, output_tokens, cache_write, cache_read)

        total_input = sum(t["input"] for t in by_model.values())
        total_output = sum(t["output"] for t in by_model.values())
        usage_breakdown = {"input_tokens": total_input, "output_tokens": total_output}
        for model, totals in by_model.items():
            usage_breakdown[f"{model}_input"] = totals["input"]
            usage_breakdown[f"{model}_output"] = totals["output"]

        record = ProviderCostRecord(
            provider_id=provider.id,
            app_id="",
            date=context.date,
            cost=round(sum(t["cost"] for t in by_model.values()), 4),
            currency="USD",
            usage_quantity=total_input + total_output,
            usage_unit="tokens",
            cost_breakdown={model: round(t["cost"], 4) for model, t in by_model.items()},
            usage_breakdown=usage_breakdown,
            raw_data={"rows": len(usage), "models": sorted(by_model)},
        )
        return ok([record])
