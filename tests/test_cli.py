"""Tests for the command line parser and the scheduler wrapper."""

import argparse
import asyncio
import datetime

import pytest

from metrics_hub.cli import build_parser, cmd_schedule, open_engine, parse_date
from metrics_hub.ingestion.registry import SOURCE_CLASSES, build_sources, source_names
from metrics_hub.scheduler.daemon import MetricsScheduler


class TestParser:
    def test_parse_date(self):
        assert parse_date("2024-01-15") == datetime.date(2024, 1, 15)

    def test_parse_date_rejects_other_formats(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_date("15/01/2024")

    def test_ingest_arguments(self):
        args = build_parser().parse_args(["ingest", "revenuecat", "--date", "2024-01-15", "--dry-run", "--json"])
        assert args.command == "ingest"
        assert args.source == "revenuecat"
        assert args.date == datetime.date(2024, 1, 15)
        assert args.dry_run and args.json

    def test_ingest_defaults(self):
        args = build_parser().parse_args(["ingest"])
        assert args.source is None
        assert args.date is None
        assert not args.dry_run

    def test_logs_arguments(self):
        args = build_parser().parse_args(["logs", "--source", "neon", "--limit", "5"])
        assert (args.source, args.limit) == ("neon", 5)

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestSettingsWiring:
    def test_debug_echoes_sql(self, settings):
        async def scenario(debug):
            engine = open_engine(settings.model_copy(update={"debug": debug}))
            try:
                return engine.sync_engine.echo
            finally:
                await engine.dispose()

        assert asyncio.run(scenario(True)) is True
        assert asyncio.run(scenario(False)) is False

    def test_disabled_scheduler_does_not_start(self, settings, capsys):
        disabled = settings.model_copy(update={"scheduler_enabled": False})
        args = build_parser().parse_args(["schedule"])
        assert asyncio.run(cmd_schedule(args, disabled)) == 1
        assert "Scheduler disabled" in capsys.readouterr().err


class TestRegistry:
    def test_registration_order(self):
        assert source_names() == [
            "app-store", "google-play", "revenuecat", "firebase", "website", "search-console", "umami",
            "email", "brevo", "anthropic", "elevenlabs", "cartesia", "google-cloud", "supabase", "neon",
        ]

    def test_build_sources_shares_client(self, settings, mock_client):
        client = mock_client(lambda request: None)
        sources = build_sources(settings, client)
        assert len(sources) == len(SOURCE_CLASSES)
        assert all(adapter.client is client for _, adapter in sources)

    def test_configured_sources_follow_settings(self, settings):
        configured = {name for name, adapter in build_sources(settings) if adapter.is_configured()}
        assert {"revenuecat", "brevo", "anthropic", "neon"} <= configured
        assert "app-store" not in configured


class TestScheduler:
    def test_start_status_stop(self):
        async def job():
            return "ran"

        async def scenario():
            scheduler = MetricsScheduler(job, hour=6, minute=30)
            await scheduler.start()
            running = scheduler.get_status()
            result = await scheduler.run_now()
            await scheduler.stop()
            return running, result, scheduler.get_status()

        running, result, stopped = asyncio.run(scenario())
        assert running["running"] is True
        assert running["next_run"] is not None
        assert (running["scheduled_hour"], running["scheduled_minute"]) == (6, 30)
        assert result == "ran"
        assert stopped == {"running": False, "scheduled_hour": 6, "scheduled_minute": 30, "next_run": None}
