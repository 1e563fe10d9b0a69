"""Shared fixtures: settings, an in-memory database and a seeded registry."""

import datetime
from contextlib import asynccontextmanager

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from metrics_hub.config import Settings
from metrics_hub.db.init_db import init_db
from metrics_hub.ingestion.context import AppInfo, IngestionContext, ProviderInfo
from metrics_hub.models import App, Provider
from metrics_hub.models.base import build_sessionmaker

TEST_DATE = datetime.date(2024, 1, 15)


@asynccontextmanager
async def open_database():
    """In-memory SQLite with all tables. One connection shared by every session."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    try:
        yield build_sessionmaker(engine)
    finally:
        await engine.dispose()


async def seed_registry(session_factory) -> tuple[App, Provider]:
    app = App(slug="habit-tracker", name="Habit Tracker", type="mobile", platforms=["ios", "android"])
    provider = Provider(slug="anthropic", name="Anthropic", category="ai", billing_cycle="usage")
    async with session_factory() as session:
        session.add_all([app, provider])
        await session.commit()
    return app, provider


@pytest.fixture
def database():
    return open_database


@pytest.fixture
def seed():
    return seed_registry


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        app_store_connect_key_id=None,
        revenuecat_secret_api_key="sk_test",
        brevo_api_keys={"habit-tracker": "brevo-key"},
        anthropic_admin_api_key="sk-ant-admin-test",
        neon_api_key="neon-test",
        elevenlabs_api_key="xi-test",
        supabase_management_key="sbp-test",
        cartesia_api_key="cartesia-test",
        stale_log_hours=6,
        http_timeout=5.0,
    )


@pytest.fixture
def mobile_app():
    return AppInfo(
        id="app-1",
        slug="habit-tracker",
        name="Habit Tracker",
        type="mobile",
        platforms=("ios", "android"),
        apple_app_id="1234567890",
        revenuecat_app_id="proj_abc",
    )


@pytest.fixture
def web_app():
    return AppInfo(
        id="app-2",
        slug="landing",
        name="Landing Site",
        type="web",
        platforms=("web",),
        ga4_property_id="987654",
        website_url="https://example.com",
    )


@pytest.fixture
def context(mobile_app, web_app):
    providers = tuple(
        ProviderInfo(id=f"prov-{slug}", slug=slug, name=slug.title(), category="ai")
        for slug in ("anthropic", "elevenlabs", "cartesia", "neon", "supabase", "google_cloud")
    )
    return IngestionContext(date=TEST_DATE, apps=(mobile_app, web_app), providers=providers)


@pytest.fixture
def mock_client():
    """Build an httpx client answering every request with ``handler``."""

    def build(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build
