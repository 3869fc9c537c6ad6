"""APScheduler process for the periodic conversation sweep."""
from __future__ import annotations

import signal
import sys
import threading
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import get_settings
from core.logging_config import get_logger, setup_logging
from scheduler.jobs import run_lease_cleanup_job, run_sweep_job

LOGGER = get_logger(__name__)

SWEEP_JOB_ID = "expired_conversation_sweep"
LEASE_CLEANUP_JOB_ID = "phone_lock_cleanup"
LEASE_CLEANUP_MINUTES = 15

_scheduler: Optional[BackgroundScheduler] = None
_shutdown = threading.Event()


def run_scheduled_sweep() -> None:
    result = run_sweep_job()
    if not result["success"]:
        LOGGER.error("Scheduled sweep failed: %s", result.get("error"))


def run_scheduled_lease_cleanup() -> None:
    result = run_lease_cleanup_job()
    if not result["success"]:
        LOGGER.error("Scheduled lease cleanup failed: %s", result.get("error"))


def build_scheduler() -> BackgroundScheduler:
    """
    Create a scheduler with the sweep job and, for the database lock
    backend, the lease cleanup job. The scheduler is not started.
    """
    settings = get_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_scheduled_sweep,
        IntervalTrigger(minutes=settings.sweep_interval_minutes),
        id=SWEEP_JOB_ID,
        name="Expired Conversation Sweep",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if settings.phone_lock_backend == "database":
        scheduler.add_job(
            run_scheduled_lease_cleanup,
            IntervalTrigger(minutes=LEASE_CLEANUP_MINUTES),
            id=LEASE_CLEANUP_JOB_ID,
            name="Phone Lock Lease Cleanup",
            replace_existing=True,
            max_instances=1,
        )

    return scheduler


def start_scheduler() -> BackgroundScheduler:
    """Start the global scheduler, or return it if it is already running."""
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        LOGGER.warning("Scheduler is already running")
        return _scheduler

    _scheduler = build_scheduler()
    _scheduler.start()
    LOGGER.info(
        "Scheduler started: %s",
        ", ".join(job.id for job in _scheduler.get_jobs()),
    )
    return _scheduler


def stop_scheduler() -> None:
    global _scheduler

    if _scheduler is None:
        return
    _scheduler.shutdown(wait=True)
    _scheduler = None
    LOGGER.info("Scheduler stopped")


def _request_shutdown(signum: int, frame: object) -> None:
    LOGGER.info("Received signal %d, shutting down", signum)
    _shutdown.set()


def run_scheduler_blocking() -> None:
    """Run the scheduler in the foreground until SIGINT or SIGTERM."""
    settings = get_settings()
    setup_logging(level=settings.log_level, json_format=settings.log_format == "json")

    signal.signal(signal.SIGINT, _request_shutdown)
    signal.signal(signal.SIGTERM, _request_shutdown)

    LOGGER.info(
        "Starting scheduler (environment=%s, dry_run=%s, sweep every %d min)",
        settings.environment,
        settings.dry_run,
        settings.sweep_interval_minutes,
    )
    start_scheduler()

    try:
        _shutdown.wait()
    finally:
        stop_scheduler()


if __name__ == "__main__":
    run_scheduler_blocking()
    sys.exit(0)
