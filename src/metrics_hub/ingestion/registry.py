"""Registered sources, in the order a full run visits them."""

import httpx

from metrics_hub.config import Settings
from metrics_hub.ingestion.app_store import AppStoreSource
from metrics_hub.ingestion.base import SourceAdapter
from metrics_hub.ingestion.brevo import BrevoSource
from metrics_hub.ingestion.email_imap import EmailSource
from metrics_hub.ingestion.firebase import FirebaseSource
from metrics_hub.ingestion.google_play import GooglePlaySource
from metrics_hub.ingestion.providers.anthropic import AnthropicSource
from metrics_hub.ingestion.providers.cartesia import CartesiaSource
from metrics_hub.ingestion.providers.elevenlabs import ElevenLabsSource
from metrics_hub.ingestion.providers.google_cloud import GoogleCloudSource
from metrics_hub.ingestion.providers.neon import NeonSource
from metrics_hub.ingestion.providers.supabase import SupabaseSource
from metrics_hub.ingestion.revenuecat import RevenueCatSource
from metrics_hub.ingestion.search_console import SearchConsoleSource
from metrics_hub.ingestion.umami import UmamiSource
from metrics_hub.ingestion.website import WebsiteSource

SOURCE_CLASSES: list[type[SourceAdapter]] = [
    AppStoreSource,
    GooglePlaySource,
    RevenueCatSource,
    FirebaseSource,
    WebsiteSource,
    SearchConsoleSource,
    UmamiSource,
    EmailSource,
    BrevoSource,
    AnthropicSource,
    ElevenLabsSource,
    CartesiaSource,
    GoogleCloudSource,
    SupabaseSource,
    NeonSource,
]


def source_names() -> list[str]:
    return [cls.name for cls in SOURCE_CLASSES]


def build_sources(settings: Settings, client: httpx.AsyncClient | None = None) -> list[tuple[str, SourceAdapter]]:
    """Instantiate every registered source, sharing ``client`` when given."""
    return [(cls.name, cls(settings, client)) for cls in SOURCE_CLASSES]
