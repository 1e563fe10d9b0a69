"""
Scheduler daemon

Runs the daily ingestion on a cron trigger until interrupted.
"""

import asyncio
import signal
from collections.abc import Awaitable, Callable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from metrics_hub.config import Settings
from metrics_hub.scheduler.jobs import run_daily_job

logger = structlog.get_logger()

JOB_ID = "daily_ingestion"


class MetricsScheduler:
    """Daily ingestion scheduler."""

    def __init__(self, job: Callable[[], Awaitable], hour: int = 6, minute: int = 0):
        """
        Initialize scheduler.

        Args:
            job: Coroutine function to run once a day
            hour: Hour to run daily job (0-23, UTC)
            minute: Minute to run daily job (0-59)
        """
        self.job = job
        self.hour = hour
        self.minute = minute
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self._running = False

    def _setup_jobs(self):
        self.scheduler.add_job(
            self.job,
            CronTrigger(hour=self.hour, minute=self.minute, timezone="UTC"),
            id=JOB_ID,
            name="Daily metrics ingestion",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info("Scheduled daily ingestion", hour=self.hour, minute=self.minute, timezone="UTC")

    async def start(self):
        """Start the scheduler."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._setup_jobs()
        self.scheduler.start()
        self._running = True

        job = self.scheduler.get_job(JOB_ID)
        logger.info("Scheduler started", next_run=str(job.next_run_time) if job else None)

    async def stop(self):
        """Stop the scheduler."""
        if not self._running:
            return

        self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Scheduler stopped")

    async def run_now(self):
        """Trigger an immediate run outside the schedule."""
        logger.info("Triggering immediate ingestion")
        return await self.job()

    def get_status(self) -> dict:
        job = self.scheduler.get_job(JOB_ID) if self._running else None

        return {
            "running": self._running,
            "scheduled_hour": self.hour,
            "scheduled_minute": self.minute,
            "next_run": str(job.next_run_time) if job else None,
        }


async def run_daemon(settings: Settings, session_factory: async_sessionmaker[AsyncSession]):
    """Run the scheduler until SIGTERM or SIGINT."""
    print("=" * 60)
    print("METRICS HUB SCHEDULER")
    print(f"Daily ingestion at {settings.daily_ingest_hour:02d}:{settings.daily_ingest_minute:02d} UTC")
    print("=" * 60)

    scheduler = MetricsScheduler(
        lambda: run_daily_job(settings, session_factory),
        hour=settings.daily_ingest_hour,
        minute=settings.daily_ingest_minute,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    try:
        await scheduler.start()
        print(f"\nScheduler running. Next run: {scheduler.get_status()['next_run']}")
        print("Press Ctrl+C to stop.")
        await stop.wait()
    finally:
        print("\nShutting down scheduler...")
        await scheduler.stop()
