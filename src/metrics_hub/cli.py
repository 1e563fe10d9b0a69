"""
Metrics Hub command line

Usage:
    metrics-hub ingest [SOURCE] [--date YYYY-MM-DD] [--dry-run] [--json]
    metrics-hub sources
    metrics-hub logs [--source SOURCE] [--limit N]
    metrics-hub init-db [--drop]
    metrics-hub schedule
"""

import argparse
import asyncio
import json
import sys
from datetime import date, datetime

from dotenv import load_dotenv

from metrics_hub.config import Settings
from metrics_hub.db.init_db import drop_db, init_db, seed_providers
from metrics_hub.exceptions import MetricsHubError
from metrics_hub.log import configure_logging
from metrics_hub.models.base import build_engine, build_sessionmaker
from metrics_hub.pipeline.ingestion_log import IngestionLogStore
from metrics_hub.pipeline.orchestrator import IngestionOrchestrator, print_summary
from metrics_hub.scheduler.daemon import run_daemon


def parse_date(date_str: str) -> date:
    """Parse date string to date."""
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date format: {date_str}. Use YYYY-MM-DD")


def open_engine(settings: Settings):
    return build_engine(settings.database_url, echo=settings.debug)


async def cmd_ingest(args, settings: Settings) -> int:
    engine = open_engine(settings)
    orchestrator = IngestionOrchestrator(settings, build_sessionmaker(engine))
    try:
        if args.source:
            result = await orchestrator.run_source_ingestion(args.source, args.date, dry_run=args.dry_run)
            if args.json:
                print(json.dumps(result.to_dict(), indent=2))
            else:
                status = result.status.upper()
                print(f"{result.source}: {status} ({result.records_processed} records)")
                if result.error or result.note:
                    print(f"  {result.error or result.note}")
            return 0 if result.success else 1

        summary = await orchestrator.run_ingestion(args.date, dry_run=args.dry_run)
        if args.json:
            print(json.dumps(summary.to_dict(), indent=2))
        else:
            print_summary(summary)
        return 1 if summary.failed_sources else 0
    finally:
        await orchestrator.close()
        await engine.dispose()


async def cmd_sources(args, settings: Settings) -> int:
    engine = open_engine(settings)
    orchestrator = IngestionOrchestrator(settings, build_sessionmaker(engine))
    try:
        for name, adapter in orchestrator.sources.items():
            state = "configured" if adapter.is_configured() else "not configured"
            print(f"  {name:16} {adapter.display_name:20} {state}")
        return 0
    finally:
        await orchestrator.close()
        await engine.dispose()


async def cmd_logs(args, settings: Settings) -> int:
    engine = open_engine(settings)
    try:
        entries = await IngestionLogStore(build_sessionmaker(engine)).recent(args.limit, args.source)
    finally:
        await engine.dispose()

    if not entries:
        print("No ingestion log entries.")
        return 0

    for entry in entries:
        started = entry.started_at.strftime("%Y-%m-%d %H:%M:%S") if entry.started_at else "-"
        line = f"  {started}  {entry.source:16} {entry.date}  {entry.status:8} {entry.records_processed:6d}"
        if entry.error_message:
            line += f"  {entry.error_message[:80]}"
        print(line)
    return 0


async def cmd_init_db(args, settings: Settings) -> int:
    engine = open_engine(settings)
    try:
        if args.drop:
            await drop_db(engine)
        tables = await init_db(engine)
        added = await seed_providers(build_sessionmaker(engine))
    finally:
        await engine.dispose()

    print(f"Tables ready: {', '.join(sorted(tables))}")
    print(f"Providers added: {added}")
    return 0


async def cmd_schedule(args, settings: Settings) -> int:
    if not settings.scheduler_enabled:
        print("Scheduler disabled (SCHEDULER_ENABLED=false)", file=sys.stderr)
        return 1

    engine = open_engine(settings)
    try:
        await run_daemon(settings, build_sessionmaker(engine))
    finally:
        await engine.dispose()
    return 0


COMMANDS = {
    "ingest": cmd_ingest,
    "sources": cmd_sources,
    "logs": cmd_logs,
    "init-db": cmd_init_db,
    "schedule": cmd_schedule,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="metrics-hub", description="Daily business metrics ingestion")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Ingest one day of metrics")
    ingest.add_argument("source", nargs="?", help="Single source to run (default: all)")
    ingest.add_argument("--date", type=parse_date, help="Date to ingest (YYYY-MM-DD, default: yesterday UTC)")
    ingest.add_argument("--dry-run", action="store_true", help="Fetch and map without writing")
    ingest.add_argument("--json", action="store_true", help="Print results as JSON")

    subparsers.add_parser("sources", help="List registered sources")

    logs = subparsers.add_parser("logs", help="Show recent ingestion log entries")
    logs.add_argument("--source", help="Only entries for this source")
    logs.add_argument("--limit", type=int, default=20, help="Number of entries (default: 20)")

    init = subparsers.add_parser("init-db", help="Create tables and seed providers")
    init.add_argument("--drop", action="store_true", help="Drop all tables first")

    subparsers.add_parser("schedule", help="Run the daily scheduler daemon")
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    settings = Settings()
    configure_logging(settings.log_level, json=settings.log_json)

    try:
        return asyncio.run(COMMANDS[args.command](args, settings))
    except MetricsHubError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
