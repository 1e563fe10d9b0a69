"""
Ingestion Orchestrator

Coordinates one daily run:
1. Load the active app/provider registry into a read-only context
2. Run each source in registration order
3. Merge the records each source returns into the metric tables
4. Record every attempt in the ingestion log
"""

import datetime
from datetime import timedelta, timezone
from enum import Enum

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from metrics_hub.config import Settings
from metrics_hub.exceptions import ContextBuildError, SourceError, UnknownSourceError
from metrics_hub.ingestion.base import SourceAdapter
from metrics_hub.ingestion.context import AppInfo, IngestionContext, ProviderInfo
from metrics_hub.ingestion.outcome import Empty, Err, Ok
from metrics_hub.ingestion.registry import build_sources
from metrics_hub.models import App, Provider
from metrics_hub.pipeline.ingestion_log import IngestionLogStore
from metrics_hub.pipeline.results import IngestionResult, IngestionSummary
from metrics_hub.pipeline.upsert import MetricStore

logger = structlog.get_logger()


class OrchestratorState(str, Enum):
    IDLE = "idle"
    BUILDING_CONTEXT = "building_context"
    RUNNING_SOURCE = "running_source"
    AGGREGATING = "aggregating"
    DONE = "done"


def yesterday_utc() -> datetime.date:
    return datetime.datetime.now(timezone.utc).date() - timedelta(days=1)


def error_details(exc: Exception) -> dict:
    if isinstance(exc, SourceError):
        return exc.details()
    return {"type": type(exc).__name__, "message": str(exc)}


class IngestionOrchestrator:
    """Runs registered sources for a date and aggregates their results.

    One failing source never stops the others. The only whole-run abort is
    a failure to load the registry (``ContextBuildError``).
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        sources: list[tuple[str, SourceAdapter]] | None = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.sources = dict(sources if sources is not None else build_sources(settings))
        self.logs = IngestionLogStore(session_factory)
        self.state = OrchestratorState.IDLE

    def available_sources(self) -> list[str]:
        return list(self.sources)

    async def close(self):
        """Clean up adapter connections."""
        for adapter in self.sources.values():
            await adapter.close()

    async def load_context(self, date: datetime.date, dry_run: bool = False) -> IngestionContext:
        """Snapshot the active apps and providers."""
        try:
            async with self.session_factory() as session:
                apps = (await session.execute(select(App).where(App.is_active.is_(True)).order_by(App.slug))).scalars().all()
                providers = (
                    (await session.execute(select(Provider).where(Provider.is_active.is_(True)).order_by(Provider.slug)))
                    .scalars()
                    .all()
                )
        except (SQLAlchemyError, OSError) as e:
            raise ContextBuildError(f"Failed to load app/provider registry: {e}") from e

        return IngestionContext(
            date=date,
            apps=tuple(AppInfo.from_row(app) for app in apps),
            providers=tuple(ProviderInfo.from_row(p) for p in providers),
            dry_run=dry_run,
        )

    async def _prepare(self, date: datetime.date, dry_run: bool) -> IngestionContext:
        self.state = OrchestratorState.BUILDING_CONTEXT
        context = await self.load_context(date, dry_run)
        logger.info(
            "Ingestion context loaded",
            date=context.date_str,
            apps=len(context.apps),
            providers=len(context.providers),
            dry_run=dry_run,
        )
        if not dry_run:
            await self.logs.reconcile_stale(timedelta(hours=self.settings.stale_log_hours))
        return context

    async def _store(self, records) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await MetricStore(session).merge_many(records)

    async def _run_source(self, name: str, adapter: SourceAdapter, context: IngestionContext) -> IngestionResult:
        log_id = None
        response_metadata = None
        try:
            if not adapter.is_configured():
                logger.info("Source not configured, skipping", source=name)
                return IngestionResult(
                    success=True, source=name, date=context.date, note=adapter.not_configured_note
                )

            if not context.dry_run:
                provider = context.provider_by_slug(getattr(adapter, "provider_slug", ""))
                log_id = await self.logs.open(
                    name,
                    context.date,
                    provider_id=provider.id if provider else None,
                    request_metadata={"dry_run": False, "apps": len(context.apps)},
                )

            logger.info("Running source", source=name, date=context.date_str)
            outcome = await adapter.fetch(context)

            if isinstance(outcome, Empty):
                result = IngestionResult(success=True, source=name, date=context.date, note=outcome.reason)
            elif isinstance(outcome, Err):
                result = IngestionResult(
                    success=False,
                    source=name,
                    date=context.date,
                    status="failed",
                    error=outcome.message,
                    error_details=outcome.details or {"type": "SourceError", "message": outcome.message},
                )
            elif isinstance(outcome, Ok):
                if context.dry_run:
                    for record in outcome.records:
                        MetricStore.check(record)
                else:
                    await self._store(outcome.records)
                result = IngestionResult(
                    success=True,
                    source=name,
                    date=context.date,
                    records_processed=len(outcome.records),
                    status="partial" if outcome.partial else "success",
                    note="; ".join(outcome.warnings) or None,
                )
                response_metadata = {"warnings": list(outcome.warnings), **outcome.metadata}
            else:
                raise TypeError(f"Unexpected fetch outcome: {outcome!r}")

        except Exception as e:
            logger.error("Source failed", source=name, date=context.date_str, error=str(e))
            result = IngestionResult(
                success=False,
                source=name,
                date=context.date,
                status="failed",
                error=str(e),
                error_details=error_details(e),
            )

        if log_id is not None:
            try:
                await self.logs.close(
                    log_id,
                    result.status,
                    result.records_processed,
                    error_message=result.error,
                    error_details=result.error_details,
                    response_metadata=response_metadata,
                )
            except Exception as e:
                # Left running; reconciled to failed on a later run
                logger.error("Failed to close ingestion log", source=name, log_id=log_id, error=str(e))

        logger.info(
            "Source ingested",
            source=name,
            status=result.status,
            records=result.records_processed,
            note=result.note,
        )
        return result

    async def run_ingestion(
        self,
        date: datetime.date | None = None,
        sources: list[str] | None = None,
        dry_run: bool = False,
    ) -> IngestionSummary:
        """Run ``sources`` (default: all registered) for ``date`` (default: yesterday UTC)."""
        date = date or yesterday_utc()
        summary = IngestionSummary(date=date, started_at=datetime.datetime.now(timezone.utc))

        context = await self._prepare(date, dry_run)

        for name in self.available_sources() if sources is None else sources:
            adapter = self.sources.get(name)
            if adapter is None:
                logger.warning("Unknown source, skipping", source=name, available=self.available_sources())
                continue
            self.state = OrchestratorState.RUNNING_SOURCE
            summary.results.append(await self._run_source(name, adapter, context))

        self.state = OrchestratorState.AGGREGATING
        summary.completed_at = datetime.datetime.now(timezone.utc)
        logger.info(
            "Ingestion complete",
            date=date.isoformat(),
            total_sources=summary.total_sources,
            successful=summary.successful_sources,
            failed=summary.failed_sources,
            partial=summary.partial_sources,
            records=summary.total_records,
            duration=round(summary.duration_seconds, 2),
        )
        self.state = OrchestratorState.DONE
        return summary

    async def run_source_ingestion(
        self,
        source_name: str,
        date: datetime.date | None = None,
        dry_run: bool = False,
    ) -> IngestionResult:
        """Run a single source. Raises ``UnknownSourceError`` for unregistered names."""
        adapter = self.sources.get(source_name)
        if adapter is None:
            raise UnknownSourceError(source_name, self.available_sources())

        context = await self._prepare(date or yesterday_utc(), dry_run)
        self.state = OrchestratorState.RUNNING_SOURCE
        result = await self._run_source(source_name, adapter, context)
        self.state = OrchestratorState.DONE
        return result


def print_summary(summary: IngestionSummary) -> None:
    """Print a run summary to stdout."""
    print("=" * 70)
    print(f"INGESTION SUMMARY - {summary.date.isoformat()}")
    print("=" * 70)

    for result in summary.results:
        marker = "FAIL" if not result.success else "PART" if result.status == "partial" else " OK "
        line = f"  [{marker}] {result.source:16} {result.records_processed:6d} records"
        if result.error:
            line += f"  {result.error}"
        elif result.note:
            line += f"  ({result.note})"
        print(line)

    print(f"\n{'-' * 70}")
    print(
        f"Sources: {summary.total_sources} | Successful: {summary.successful_sources} | "
        f"Failed: {summary.failed_sources} | Partial: {summary.partial_sources}"
    )
    print(f"Records: {summary.total_records} | Duration: {summary.duration_seconds:.1f}s")
    print("=" * 70)
