"""
Scheduled jobs

Daily ingestion of yesterday's metrics.
"""

from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from metrics_hub.config import Settings
from metrics_hub.pipeline.orchestrator import IngestionOrchestrator
from metrics_hub.pipeline.results import IngestionSummary

logger = structlog.get_logger()


async def run_daily_job(settings: Settings, session_factory: async_sessionmaker[AsyncSession]) -> IngestionSummary:
    """Ingest every registered source for yesterday (UTC)."""
    logger.info("Daily ingestion job started", timestamp=datetime.now(timezone.utc).isoformat())

    orchestrator = IngestionOrchestrator(settings, session_factory)
    try:
        summary = await orchestrator.run_ingestion()
    except Exception as e:
        logger.error("Daily ingestion job failed", error=str(e))
        raise
    finally:
        await orchestrator.close()

    if summary.failed_sources:
        failed = [r.source for r in summary.results if not r.success]
        logger.warning("Daily ingestion finished with failures", failed=failed)
    else:
        logger.info("Daily ingestion job complete", records=summary.total_records)

    return summary
