"""Tests for the natural-key merge into metric tables."""

import asyncio

import pytest
from sqlalchemy import func, select

from conftest import TEST_DATE
from metrics_hub.exceptions import NaturalKeyError
from metrics_hub.models import DailyInstalls, DailyProviderCosts
from metrics_hub.pipeline.upsert import MergeOutcome, MetricStore
from metrics_hub.records import InstallsRecord, ProviderCostRecord


def installs(app_id: str, n: int = 5, scale: int = 1) -> list[InstallsRecord]:
    countries = ["US", "GB", "DE", "FR", "JP"]
    return [
        InstallsRecord(app_id=app_id, date=TEST_DATE, platform="ios", country=c, installs=(i + 1) * scale)
        for i, c in enumerate(countries[:n])
    ]


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestMerge:
    """Tests for insert-or-replace behaviour."""

    def test_second_run_updates_in_place(self, database, seed):
        """Merging the same five records twice leaves five rows."""

        async def scenario():
            async with database() as session_factory:
                app, _ = await seed(session_factory)

                async with session_factory() as session, session.begin():
                    first = await MetricStore(session).merge_many(installs(app.id))
                async with session_factory() as session, session.begin():
                    second = await MetricStore(session).merge_many(installs(app.id))

                return first, second, await count_rows(session_factory, DailyInstalls)

        first, second, rows = asyncio.run(scenario())
        assert first[MergeOutcome.INSERTED] == 5
        assert second[MergeOutcome.UPDATED] == 5
        assert second[MergeOutcome.INSERTED] == 0
        assert rows == 5

    def test_last_write_wins(self, database, seed):
        """Measures are replaced, never summed."""

        async def scenario():
            async with database() as session_factory:
                app, _ = await seed(session_factory)
                for scale in (1, 10):
                    async with session_factory() as session, session.begin():
                        await MetricStore(session).merge_many(installs(app.id, n=1, scale=scale))

                async with session_factory() as session:
                    return (await session.execute(select(DailyInstalls))).scalars().all()

        rows = asyncio.run(scenario())
        assert len(rows) == 1
        assert rows[0].installs == 10

    def test_provider_costs_key_with_empty_app(self, database, seed):
        async def scenario():
            async with database() as session_factory:
                _, provider = await seed(session_factory)
                outcomes = []
                for cost in (1.5, 2.5):
                    record = ProviderCostRecord(provider_id=provider.id, date=TEST_DATE, cost=cost)
                    async with session_factory() as session, session.begin():
                        outcomes.append(await MetricStore(session).merge("provider_costs", record))

                async with session_factory() as session:
                    rows = (await session.execute(select(DailyProviderCosts))).scalars().all()
                return outcomes, rows

        outcomes, rows = asyncio.run(scenario())
        assert outcomes == [MergeOutcome.INSERTED, MergeOutcome.UPDATED]
        assert len(rows) == 1
        assert rows[0].app_id == ""
        assert rows[0].cost == 2.5


class TestValidation:
    def test_missing_reference_rejected(self, database):
        async def scenario():
            async with database() as session_factory:
                async with session_factory() as session:
                    await MetricStore(session).merge("installs", InstallsRecord(app_id="app-1", date=TEST_DATE))

        with pytest.raises(NaturalKeyError, match="platform"):
            asyncio.run(scenario())

    def test_kind_mismatch_rejected(self, database):
        async def scenario():
            async with database() as session_factory:
                async with session_factory() as session:
                    record = InstallsRecord(app_id="app-1", date=TEST_DATE, platform="ios")
                    await MetricStore(session).merge("revenue", record)

        with pytest.raises(ValueError, match="Expected a revenue record"):
            asyncio.run(scenario())

    def test_rejected_record_writes_nothing(self, database, seed):
        async def scenario():
            async with database() as session_factory:
                app, _ = await seed(session_factory)
                batch = installs(app.id, n=2) + [InstallsRecord(app_id=app.id, date=TEST_DATE)]
                with pytest.raises(NaturalKeyError):
                    async with session_factory() as session, session.begin():
                        await MetricStore(session).merge_many(batch)
                return await count_rows(session_factory, DailyInstalls)

        assert asyncio.run(scenario()) == 0
