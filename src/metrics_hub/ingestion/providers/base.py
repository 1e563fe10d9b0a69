"""Shared plumbing for provider-cost sources."""

from abc import abstractmethod

from metrics_hub.ingestion.base import SourceAdapter
from metrics_hub.ingestion.context import IngestionContext, ProviderInfo
from metrics_hub.ingestion.outcome import Err, FetchOutcome

GB = 1024**3


class ProviderCostSource(SourceAdapter):
    """Source that writes one daily cost row for a registered provider."""

    provider_slug: str = ""

    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        provider = context.provider_by_slug(self.provider_slug)
        if provider is None:
            return Err(
                f"{self.display_name} provider not found in database",
                {"type": "ProviderNotRegistered", "provider_slug": self.provider_slug},
            )
        return await self.fetch_costs(context, provider)

    @abstractmethod
    async def fetch_costs(self, context: IngestionContext, provider: ProviderInfo) -> FetchOutcome:
        """Fetch usage for ``context.date`` and map it to cost records."""
