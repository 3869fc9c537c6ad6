"""Health check routes."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api.deps import get_readonly_db
from core.config import get_settings
from core.db import REQUIRED_TABLES
from core.logging_config import get_logger
from core.models import TERMINAL_STATES, RenewalConversation
from core.utils import utcnow

router = APIRouter()
LOGGER = get_logger(__name__)


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Basic health check - always returns OK."""
    settings = get_settings()
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "dry_run": settings.dry_run,
        "environment": settings.environment,
    }


@router.get("/health/detailed")
def detailed_health_check(
    db: Session = Depends(get_readonly_db),
) -> Dict[str, Any]:
    """Detailed health check including database, open conversations and Twilio config."""
    settings = get_settings()
    status = "healthy"
    checks: Dict[str, Any] = {}

    try:
        db.execute(text("SELECT 1"))
        open_count = db.query(func.count(RenewalConversation.id)).filter(
            RenewalConversation.state.notin_([s.value for s in TERMINAL_STATES])
        ).scalar()
        checks["database"] = {
            "status": "healthy",
            "connected": True,
            "open_conversations": open_count,
            "required_tables": REQUIRED_TABLES,
        }
    except SQLAlchemyError as e:
        LOGGER.error(f"Database health check failed: {e}")
        status = "unhealthy"
        checks["database"] = {"status": "unhealthy", "error": str(e)}

    checks["twilio"] = {
        "configured": settings.is_twilio_enabled(),
        "can_send": settings.can_send_sms(),
        "from_number": bool(settings.twilio_from_number),
        "messaging_service": bool(settings.twilio_messaging_service_sid),
        "signature_validation": settings.validate_twilio_signature,
    }
    if not settings.can_send_sms():
        status = "degraded"

    checks["alerts"] = {
        "slack": settings.is_slack_alerting_enabled(),
        "sms": settings.is_sms_alerting_enabled(),
    }
    checks["phone_lock"] = {"backend": settings.phone_lock_backend}

    return {
        "status": status,
        "timestamp": utcnow().isoformat(),
        "checks": checks,
    }
