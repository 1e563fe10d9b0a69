"""Daily ingestion scheduler."""

from metrics_hub.scheduler.daemon import MetricsScheduler, run_daemon
from metrics_hub.scheduler.jobs import run_daily_job

__all__ = [
    "MetricsScheduler",
    "run_daemon",
    "run_daily_job",
]
