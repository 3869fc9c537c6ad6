"""Scheduler module for periodic maintenance jobs."""
from __future__ import annotations

from .jobs import run_lease_cleanup_job, run_sweep_job
from .runner import build_scheduler, run_scheduler_blocking, start_scheduler, stop_scheduler

__all__ = [
    "run_sweep_job",
    "run_lease_cleanup_job",
    "build_scheduler",
    "start_scheduler",
    "stop_scheduler",
    "run_scheduler_blocking",
]
