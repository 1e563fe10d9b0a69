"""Idempotent merge of canonical records into the metric tables."""

from collections import Counter
from collections.abc import Iterable
from enum import Enum

import structlog
from sqlalchemy import and_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from metrics_hub.exceptions import NaturalKeyError
from metrics_hub.models.base import new_id, utcnow
from metrics_hub.records import MetricRecord

logger = structlog.get_logger()

DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class MergeOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"


class MetricStore:
    """Merge records by natural key within the caller's session.

    The caller owns the transaction: nothing here commits.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self, table):
        dialect = self.session.get_bind().dialect.name
        try:
            return DIALECT_INSERTS[dialect](table)
        except KeyError:
            raise NotImplementedError(f"Upsert not supported for dialect: {dialect}") from None

    @staticmethod
    def check(record: MetricRecord) -> None:
        missing = record.missing_refs()
        if missing:
            raise NaturalKeyError(f"{record.kind} record missing required field(s): {', '.join(missing)}")

    async def exists(self, record: MetricRecord) -> bool:
        model = record.table
        conditions = [getattr(model, name) == value for name, value in zip(record.natural_key_fields(), record.natural_key())]
        result = await self.session.execute(select(model.id).where(and_(*conditions)).limit(1))
        return result.scalar_one_or_none() is not None

    async def merge(self, kind: str, record: MetricRecord) -> MergeOutcome:
        """Insert the record, or overwrite every non-key column of the existing row."""
        if record.kind != kind:
            raise ValueError(f"Expected a {kind} record, got {record.kind}")
        self.check(record)
        existed = await self.exists(record)

        model = record.table
        key = record.natural_key_fields()
        now = utcnow()
        values = {**record.to_row(), "id": new_id(), "created_at": now, "updated_at": now}

        stmt = self._insert(model.__table__).values(**values)
        update_columns = {
            name: stmt.excluded[name] for name in values if name not in key and name not in ("id", "created_at")
        }
        stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=update_columns)
        await self.session.execute(stmt)

        return MergeOutcome.UPDATED if existed else MergeOutcome.INSERTED

    async def merge_many(self, records: Iterable[MetricRecord]) -> Counter:
        """Merge records in order and count outcomes per ``MergeOutcome``."""
        counts: Counter = Counter()
        for record in records:
            counts[await self.merge(record.kind, record)] += 1
        logger.debug(
            "Merged records",
            inserted=counts[MergeOutcome.INSERTED],
            updated=counts[MergeOutcome.UPDATED],
        )
        return counts
