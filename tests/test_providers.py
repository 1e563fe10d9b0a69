"""Tests for provider cost sources."""

import asyncio

import httpx
import pytest

from metrics_hub.ingestion.outcome import Empty, Err
from metrics_hub.ingestion.providers.anthropic import AnthropicSource, pricing_for, token_cost
from metrics_hub.ingestion.providers.base import GB
from metrics_hub.ingestion.providers.cartesia import CartesiaSource
from metrics_hub.ingestion.providers.elevenlabs import ElevenLabsSource
from metrics_hub.ingestion.providers.neon import NeonSource, project_cost
from metrics_hub.ingestion.providers.supabase import SupabaseSource, estimate_daily_cost

# 2024-01-15T00:00:00Z
DAY_START = 1705276800


def usage_page(results, next_page=None):
    return {"data": [{"starting_at": "2024-01-15T00:00:00Z", "results": results}],
            "has_more": next_page is not None, "next_page": next_page}


class TestProviderLookup:
    def test_unregistered_provider_is_an_error(self, settings, context, mock_client):
        bare = context.__class__(date=context.date, apps=context.apps)
        source = NeonSource(settings, mock_client(lambda r: httpx.Response(500)))
        outcome = asyncio.run(source.fetch(bare))
        assert isinstance(outcome, Err)
        assert outcome.message == "Neon provider not found in database"
        assert outcome.details["provider_slug"] == "neon"


class TestAnthropic:
    """Tests for token usage pricing."""

    def test_pricing_by_model_family(self):
        assert pricing_for("claude-3-5-haiku-20241022") == (0.8, 4.0)
        assert pricing_for("claude-opus-4-20250514") == (15.0, 75.0)
        assert pricing_for("some-new-model") == (3.0, 15.0)

    def test_cache_tokens_priced(self):
        assert token_cost("claude-sonnet-4", 0, 0, cache_write=1_000_000) == pytest.approx(3.75)
        assert token_cost("claude-sonnet-4", 0, 0, cache_read=1_000_000) == pytest.approx(0.3)

    def test_paginated_usage_report(self, settings, context, mock_client):
        pages = {
            None: usage_page(
                [{"model": "claude-sonnet-4-20250514", "uncached_input_tokens": 1_000_000, "output_tokens": 100_000}],
                next_page="page-2",
            ),
            "page-2": usage_page([{"model": "claude-3-5-haiku-20241022", "uncached_input_tokens": 2_000_000}]),
        }

        def handler(request):
            assert request.headers["x-api-key"] == "sk-ant-admin-test"
            assert request.headers["anthropic-version"] == "2023-06-01"
            assert request.url.params["starting_at"] == "2024-01-15T00:00:00Z"
            assert request.url.params["ending_at"] == "2024-01-16T00:00:00Z"
            return httpx.Response(200, json=pages[request.url.params.get("page")])

        source = AnthropicSource(settings, mock_client(handler), request_delay=0)
        (record,) = asyncio.run(source.fetch(context)).records

        assert record.provider_id == "prov-anthropic"
        assert record.app_id == ""
        assert record.cost == pytest.approx(6.1)
        assert record.usage_quantity == 3_100_000
        assert record.usage_unit == "tokens"
        assert record.cost_breakdown == {"claude-sonnet-4-20250514": 4.5, "claude-3-5-haiku-20241022": 1.6}
        assert record.usage_breakdown["input_tokens"] == 3_000_000
        assert record.usage_breakdown["output_tokens"] == 100_000

    @pytest.mark.parametrize("status", [403, 404])
    def test_report_unavailable_is_empty(self, settings, context, mock_client, status):
        source = AnthropicSource(settings, mock_client(lambda r: httpx.Response(status)), request_delay=0)
        assert isinstance(asyncio.run(source.fetch(context)), Empty)


class TestElevenLabs:
    def test_history_for_the_day(self, settings, context, mock_client):
        history = {
            "history": [
                {"date_unix": DAY_START + 3600, "character_count_change_from": 100,
                 "character_count_change_to": 600, "voice_name": "Rachel"},
                {"date_unix": DAY_START - 60, "character_count_change_from": 0,
                 "character_count_change_to": 999, "voice_name": "Rachel"},
            ],
            "has_more": True,
            "last_history_item_id": "h2",
        }
        calls = []

        def handler(request):
            calls.append(request)
            assert request.headers["xi-api-key"] == "xi-test"
            return httpx.Response(200, json=history)

        source = ElevenLabsSource(settings, mock_client(handler), request_delay=0)
        (record,) = asyncio.run(source.fetch(context)).records

        assert len(calls) == 1
        assert record.usage_quantity == 500
        assert record.cost == pytest.approx(0.09)
        assert record.usage_breakdown["Rachel"] == 500
        assert record.raw_data["source"] == "history"

    def test_falls_back_to_subscription(self, settings, context, mock_client):
        def handler(request):
            if request.url.path.endswith("/history"):
                return httpx.Response(403, json={"detail": "missing_permissions"})
            return httpx.Response(200, json={"character_count": 1000, "character_limit": 10000})

        source = ElevenLabsSource(settings, mock_client(handler), request_delay=0)
        outcome = asyncio.run(source.fetch(context))

        (record,) = outcome.records
        assert record.cost == pytest.approx(0.18)
        assert record.raw_data["source"] == "subscription"
        assert outcome.partial


class TestCartesia:
    def test_usage_by_model(self, settings, context, mock_client):
        def handler(request):
            assert request.headers["X-API-Key"] == "cartesia-test"
            return httpx.Response(200, json={"usage": [{"model_id": "sonic-2", "characters": 10_000}]})

        (record,) = asyncio.run(CartesiaSource(settings, mock_client(handler)).fetch(context)).records
        assert record.cost == 1.5
        assert record.cost_breakdown == {"sonic-2": 1.5}

    def test_missing_endpoint_is_empty(self, settings, context, mock_client):
        source = CartesiaSource(settings, mock_client(lambda r: httpx.Response(404)))
        assert isinstance(asyncio.run(source.fetch(context)), Empty)


class TestNeon:
    """Tests for consumption-based pricing."""

    def test_project_cost(self):
        costs = project_cost({"compute_time_seconds": 7200, "data_transfer_bytes": 2 * GB})
        assert costs["compute"] == pytest.approx(0.051)
        assert costs["data_transfer"] == pytest.approx(0.18)
        assert costs["storage"] == 0

    def test_sums_projects_and_skips_missing(self, settings, context, mock_client):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer neon-test"
            path = request.url.path
            if path == "/api/v2/projects":
                return httpx.Response(200, json={"projects": [{"id": "p1", "name": "main"}, {"id": "p2", "name": "old"}]})
            if path == "/api/v2/projects/p1/consumption":
                assert request.url.params["from"].startswith("2024-01-15T00:00:00")
                return httpx.Response(200, json={"compute_time_seconds": 7200, "data_transfer_bytes": 2 * GB})
            return httpx.Response(404)

        source = NeonSource(settings, mock_client(handler), request_delay=0)
        outcome = asyncio.run(source.fetch(context))

        (record,) = outcome.records
        assert record.provider_id == "prov-neon"
        assert record.cost == pytest.approx(0.231)
        assert record.usage_quantity == 2
        assert record.usage_unit == "projects"
        assert record.raw_data["cost_by_project"] == {"main": 0.231}
        assert not outcome.partial

    def test_no_projects_is_empty(self, settings, context, mock_client):
        source = NeonSource(settings, mock_client(lambda r: httpx.Response(200, json={"projects": []})))
        assert isinstance(asyncio.run(source.fetch(context)), Empty)


class TestSupabase:
    def test_estimate_daily_cost(self):
        costs = estimate_daily_cost({"db_size": 30 * GB, "monthly_active_users": 150_000, "func_invocations": 400_000})
        assert costs["database"] == pytest.approx(0.125)
        assert costs["auth"] == pytest.approx(25 / 30)
        assert costs["functions"] == 0

    def test_usage_unavailable_records_zero_cost(self, settings, context, mock_client):
        def handler(request):
            if request.url.path == "/v1/usage":
                return httpx.Response(404)
            return httpx.Response(200, json=[{"name": "prod"}, {"name": "staging"}])

        outcome = asyncio.run(SupabaseSource(settings, mock_client(handler)).fetch(context))
        (record,) = outcome.records
        assert record.cost == 0
        assert record.usage_quantity == 2
        assert outcome.partial
