"""Expired-conversation sweep.

Open conversations that passed ``expires_at`` without a reply are moved to
``timeout``. Report-rented conversations that time out deactivate their
listing, since the owner never confirmed it was still available.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from core.db import get_session_factory
from core.logging_config import get_logger
from core.models import ActionTaken, ConversationState
from core.types import Outbox
from core.utils import utcnow
from services.conversation_store import ConversationStore
from services.notification import CATEGORY_TIMEOUTS, SmsTransport, deliver_outbox

LOGGER = get_logger(__name__)


def sweep_expired_conversations(
    session: Session,
    now: Optional[datetime] = None,
    outbox: Optional[Outbox] = None,
) -> Dict[str, Any]:
    """
    Time out every expired open conversation.

    Args:
        session: Database session (caller commits).
        now: Reference time, defaults to utcnow().
        outbox: Receives the admin summary alert when anything timed out.

    Returns:
        Dict with counts of expired, updated and auto-deactivated records.
    """
    now = now or utcnow()
    store = ConversationStore(session)
    expired = store.expired_open(now)

    LOGGER.info(f"Found {len(expired)} expired conversations")

    auto_deactivated = 0
    timed_out = 0

    for conversation in expired:
        if conversation.state == ConversationState.AWAITING_REPORT_RESPONSE.value:
            listing = store.get_listing(conversation.listing_id)
            if listing is not None:
                store.deactivate_listing(listing, now)
                auto_deactivated += 1
            action = ActionTaken.AUTO_DEACTIVATED.value
        else:
            action = ActionTaken.TIMEOUT.value

        store.update(
            conversation,
            now=now,
            state=ConversationState.TIMEOUT,
            action_taken=action,
        )
        timed_out += 1

    summary = {
        "expired_found": len(expired),
        "updated_count": timed_out,
        "auto_deactivated_count": auto_deactivated,
        "timestamp": now.isoformat(),
    }

    if timed_out and outbox is not None:
        outbox.alert(
            f"{timed_out} renewal conversations timed out",
            f"Timed out: {timed_out}\nListings auto-deactivated: {auto_deactivated}",
            CATEGORY_TIMEOUTS,
        )

    LOGGER.info(f"Expired conversation sweep completed: {summary}")
    return summary


def run_sweep(
    session_factory: Optional[Callable] = None,
    transport: Optional[SmsTransport] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Run the sweep in its own transaction, then send the admin summary.

    Used by the scheduler job and the ``sweep`` CLI command.
    """
    session_factory = session_factory or get_session_factory()
    outbox = Outbox()

    with session_factory() as session:
        summary = sweep_expired_conversations(session, now=now, outbox=outbox)

    if outbox.alerts:
        with session_factory() as session:
            deliver_outbox(session, outbox, transport)

    return summary


__all__ = ["sweep_expired_conversations", "run_sweep"]
