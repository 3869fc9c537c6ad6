"""Scheduled job definitions for the listing renewal SMS engine."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.config import get_settings
from core.db import get_session_factory
from core.logging_config import get_logger
from services.cleanup import run_sweep
from services.locking import get_phone_lock_service

LOGGER = get_logger(__name__)


def run_sweep_job(now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Time out expired conversations and report the result.

    Args:
        now: Reference time override.

    Returns:
        Job result summary.
    """
    job_id = f"sweep_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}"
    LOGGER.info("[%s] Starting expired conversation sweep", job_id)

    try:
        summary = run_sweep(session_factory=get_session_factory(), now=now)
        LOGGER.info(
            "[%s] Sweep complete: expired=%d, auto_deactivated=%d",
            job_id,
            summary["updated_count"],
            summary["auto_deactivated_count"],
        )
        return {
            "job_id": job_id,
            "job_type": "sweep",
            "success": True,
            "result": summary,
        }
    except Exception as e:
        LOGGER.exception("[%s] Sweep job failed: %s", job_id, e)
        return {
            "job_id": job_id,
            "job_type": "sweep",
            "success": False,
            "error": str(e),
        }


def run_lease_cleanup_job() -> Dict[str, Any]:
    """Delete expired phone lock leases (database lock backend only)."""
    job_id = f"lease_cleanup_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}"
    settings = get_settings()

    if settings.phone_lock_backend != "database":
        return {"job_id": job_id, "job_type": "lease_cleanup", "success": True, "result": {"removed": 0}}

    try:
        removed = get_phone_lock_service().cleanup_expired_leases()
        LOGGER.info("[%s] Removed %d expired phone lock leases", job_id, removed)
        return {"job_id": job_id, "job_type": "lease_cleanup", "success": True, "result": {"removed": removed}}
    except Exception as e:
        LOGGER.exception("[%s] Lease cleanup failed: %s", job_id, e)
        return {"job_id": job_id, "job_type": "lease_cleanup", "success": False, "error": str(e)}


__all__ = ["run_sweep_job", "run_lease_cleanup_job"]
