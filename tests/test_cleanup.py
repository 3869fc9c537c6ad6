"""Test the expired-conversation sweep."""
from __future__ import annotations

from datetime import timedelta

from core.models import ActionTaken, ConversationKind, ConversationState, RenewalConversation
from core.types import Outbox
from services.cleanup import run_sweep, sweep_expired_conversations
from services.notification import CATEGORY_TIMEOUTS

S = ConversationState


def test_expired_open_conversations_time_out(db_session, make_listing, make_conversation, now):
    listing = make_listing()
    expired = make_conversation(listing, expires_at=now - timedelta(hours=1))
    fresh = make_conversation(make_listing(), expires_at=now + timedelta(hours=1))
    finished = make_conversation(make_listing(), state=S.COMPLETED, expires_at=now - timedelta(days=1))

    outbox = Outbox()
    summary = sweep_expired_conversations(db_session, now=now, outbox=outbox)

    assert summary["expired_found"] == 1
    assert summary["updated_count"] == 1
    assert summary["auto_deactivated_count"] == 0
    assert expired.state == S.TIMEOUT.value
    assert expired.action_taken == ActionTaken.TIMEOUT.value
    assert listing.is_active is True
    assert fresh.state == S.AWAITING_AVAILABILITY.value
    assert finished.state == S.COMPLETED.value
    assert outbox.alerts[0].category == CATEGORY_TIMEOUTS


def test_report_response_timeout_auto_deactivates(db_session, make_listing, make_conversation, now):
    listing = make_listing()
    conversation = make_conversation(
        listing,
        state=S.AWAITING_REPORT_RESPONSE,
        kind=ConversationKind.REPORT_RENTED,
        expires_at=now - timedelta(minutes=1),
    )

    summary = sweep_expired_conversations(db_session, now=now)

    assert summary["auto_deactivated_count"] == 1
    assert conversation.state == S.TIMEOUT.value
    assert conversation.action_taken == ActionTaken.AUTO_DEACTIVATED.value
    assert listing.is_active is False


def test_pending_batch_members_also_time_out(db_session, make_listing, make_conversation, now):
    pending = make_conversation(make_listing(), state=S.PENDING, expires_at=now - timedelta(minutes=1))

    sweep_expired_conversations(db_session, now=now)

    assert pending.state == S.TIMEOUT.value


def test_nothing_expired_sends_no_alert(db_session, make_listing, make_conversation, now):
    make_conversation(make_listing())

    outbox = Outbox()
    summary = sweep_expired_conversations(db_session, now=now, outbox=outbox)

    assert summary["updated_count"] == 0
    assert outbox.alerts == []


def test_run_sweep_commits(db_session, session_local, session_factory, transport, make_listing, make_conversation, now):
    conversation = make_conversation(make_listing(), expires_at=now - timedelta(hours=2))
    db_session.commit()

    summary = run_sweep(session_factory=session_factory, transport=transport, now=now)

    assert summary["updated_count"] == 1
    with session_local() as session:
        stored = session.get(RenewalConversation, conversation.id)
        assert stored.state == S.TIMEOUT.value
