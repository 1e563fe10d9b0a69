"""ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from metrics_hub.models.base import Base
from metrics_hub.models.ingestion_log import IngestionLog
from metrics_hub.models.metrics import (
    DailyActiveUsers,
    DailyEmailMetrics,
    DailyFeatureUsage,
    DailyInstalls,
    DailyProviderCosts,
    DailyRevenue,
    DailySearchConsole,
    DailySubscriptions,
    DailyUmamiStats,
    DailyWebsiteTraffic,
)
from metrics_hub.models.registry import App, Provider

__all__ = [
    "Base",
    "App",
    "Provider",
    "IngestionLog",
    "DailyInstalls",
    "DailyRevenue",
    "DailySubscriptions",
    "DailyActiveUsers",
    "DailyFeatureUsage",
    "DailyProviderCosts",
    "DailyWebsiteTraffic",
    "DailyEmailMetrics",
    "DailySearchConsole",
    "DailyUmamiStats",
]
