"""Database initialization."""

import structlog
from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Import models to register them with Base
from metrics_hub.models import Base, Provider

logger = structlog.get_logger()

# Cost providers the ingestion sources look up by slug
DEFAULT_PROVIDERS = [
    {"slug": "anthropic", "name": "Anthropic", "category": "ai", "billing_cycle": "usage"},
    {"slug": "elevenlabs", "name": "ElevenLabs", "category": "ai", "billing_cycle": "usage"},
    {"slug": "cartesia", "name": "Cartesia", "category": "ai", "billing_cycle": "usage"},
    {"slug": "google_cloud", "name": "Google Cloud", "category": "infrastructure", "billing_cycle": "monthly"},
    {"slug": "supabase", "name": "Supabase", "category": "infrastructure", "billing_cycle": "monthly"},
    {"slug": "neon", "name": "Neon", "category": "infrastructure", "billing_cycle": "usage"},
    {"slug": "revenuecat", "name": "RevenueCat", "category": "payment", "billing_cycle": "monthly"},
]


async def init_db(engine: AsyncEngine) -> list[str]:
    """Create all database tables and return their names."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())

    logger.info("Database tables created", tables=tables)
    return tables


async def drop_db(engine: AsyncEngine) -> None:
    """Drop all database tables (use with caution!)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.warning("All tables dropped")


async def seed_providers(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Insert any missing default providers. Returns the number added."""
    added = 0
    async with session_factory() as session:
        result = await session.execute(select(Provider.slug))
        existing = set(result.scalars().all())

        for row in DEFAULT_PROVIDERS:
            if row["slug"] in existing:
                continue
            session.add(Provider(**row))
            added += 1

        await session.commit()

    logger.info("Providers seeded", added=added)
    return added
