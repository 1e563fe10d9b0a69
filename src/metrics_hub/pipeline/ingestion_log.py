"""Audit log of ingestion attempts.

Each write runs in its own short transaction so a log entry survives a
rolled-back metric write.
"""

import datetime
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from metrics_hub.exceptions import LogStateError
from metrics_hub.models.base import utcnow
from metrics_hub.models.ingestion_log import TERMINAL_STATUSES, IngestionLog

logger = structlog.get_logger()

INTERRUPTED_MESSAGE = "interrupted: no completion recorded"


class IngestionLogStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def open(
        self,
        source: str,
        date: datetime.date,
        provider_id: str | None = None,
        app_id: str | None = None,
        request_metadata: dict[str, Any] | None = None,
    ) -> str:
        """Create a ``running`` entry and return its id."""
        entry = IngestionLog(
            source=source,
            date=date,
            provider_id=provider_id,
            app_id=app_id,
            status="running",
            started_at=utcnow(),
            request_metadata=request_metadata,
        )
        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()
        return entry.id

    async def close(
        self,
        log_id: str,
        status: str,
        records_processed: int,
        error_message: str | None = None,
        error_details: dict[str, Any] | None = None,
        response_metadata: dict[str, Any] | None = None,
    ) -> None:
        """Move a ``running`` entry to its terminal status."""
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal status: {status}")

        async with self.session_factory() as session:
            entry = await session.get(IngestionLog, log_id)
            if entry is None:
                raise LogStateError(f"Ingestion log {log_id} not found")
            if entry.status != "running":
                raise LogStateError(f"Ingestion log {log_id} already closed with status {entry.status}")

            entry.status = status
            entry.records_processed = records_processed
            entry.completed_at = utcnow()
            entry.error_message = error_message
            entry.error_details = error_details
            entry.response_metadata = response_metadata
            await session.commit()

    async def reconcile_stale(self, max_age: timedelta) -> int:
        """Fail ``running`` entries older than ``max_age``. Returns the count."""
        cutoff = utcnow() - max_age
        async with self.session_factory() as session:
            result = await session.execute(
                update(IngestionLog)
                .where(IngestionLog.status == "running", IngestionLog.started_at < cutoff)
                .values(status="failed", completed_at=utcnow(), error_message=INTERRUPTED_MESSAGE)
            )
            await session.commit()

        if result.rowcount:
            logger.warning("Reconciled stale ingestion logs", count=result.rowcount, cutoff=cutoff.isoformat())
        return result.rowcount

    async def recent(self, limit: int = 20, source: str | None = None) -> list[IngestionLog]:
        stmt = select(IngestionLog).order_by(desc(IngestionLog.started_at)).limit(limit)
        if source:
            stmt = stmt.where(IngestionLog.source == source)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
