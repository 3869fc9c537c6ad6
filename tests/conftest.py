"""Pytest configuration and fixtures."""
from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

# Set test environment
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DRY_RUN", "true")
os.environ.setdefault("ENVIRONMENT", "test")

from core.config import get_settings
from core.db import Base, get_session_factory
from core.models import (
    ConversationKind,
    ConversationState,
    Listing,
    RenewalConversation,
)
from core.types import Outbox
from core.utils import utcnow
from outreach.twilio_client import SMSResult
from services import notification
from services.engine import RenewalSmsEngine
from services.locking import PhoneLockService
from services.state_machine import StateMachine

OWNER_PHONE = "+17185550100"


class FakeTransport:
    """Records every send instead of calling Twilio."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[str, str]] = []

    def send_sms(self, to: str, body: str) -> SMSResult:
        self.sent.append((to, body))
        if self.fail:
            return SMSResult(success=False, status="failed", error_code=30003, error_message="Unreachable")
        return SMSResult(success=True, sid=f"SMfake{len(self.sent):04d}", status="queued")

    def bodies_to(self, phone: str) -> List[str]:
        return [body for to, body in self.sent if to == phone]


@pytest.fixture
def db_engine():
    """Fresh in-memory database for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_local(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine)


@pytest.fixture
def session_factory(session_local):
    """Factory of committing session contexts, as used by the engine."""
    return get_session_factory(session_local)


@pytest.fixture
def db_session(session_local) -> Session:
    session = session_local()
    yield session
    session.close()


@pytest.fixture
def now() -> datetime:
    """A fixed reference time close to the real clock."""
    return utcnow().replace(microsecond=0)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture(autouse=True)
def clear_alert_rate_limit():
    notification._alert_rate_limiter.calls.clear()
    yield
    notification._alert_rate_limiter.calls.clear()


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def machine(db_session, outbox, now, settings) -> StateMachine:
    return StateMachine(db_session, outbox, now=now, settings=settings)


@pytest.fixture
def sms_engine(session_factory, transport, now, settings) -> RenewalSmsEngine:
    locks = PhoneLockService(backend="memory", session_factory=session_factory, wait_seconds=1)
    return RenewalSmsEngine(
        session_factory=session_factory,
        transport=transport,
        lock_service=locks,
        clock=lambda: now,
        settings=settings,
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_listing(db_session, now):
    """Create a listing; pass overrides as keyword arguments."""

    def _make(**fields) -> Listing:
        values = dict(
            listing_type="rental",
            bedrooms=2,
            location="E 15th & Ave J",
            neighborhood="Midwood",
            price=2500,
            contact_phone="(718) 555-0100",
            contact_phone_e164=OWNER_PHONE,
            is_active=True,
            approved=True,
            expires_at=now + timedelta(days=2),
            created_at=now - timedelta(days=30),
            updated_at=now - timedelta(days=30),
        )
        values.update(fields)
        listing = Listing(**values)
        db_session.add(listing)
        db_session.flush()
        return listing

    return _make


@pytest.fixture
def make_conversation(db_session, now):
    """Create a conversation; later calls are newer unless ``updated_at`` is given."""
    counter = {"n": 0}

    def _make(
        listing: Optional[Listing] = None,
        state: ConversationState = ConversationState.AWAITING_AVAILABILITY,
        kind: ConversationKind = ConversationKind.RENEWAL,
        phone: str = OWNER_PHONE,
        expires_at: Optional[datetime] = None,
        **fields,
    ) -> RenewalConversation:
        counter["n"] += 1
        stamp = now - timedelta(hours=2) + timedelta(minutes=counter["n"])
        values = dict(
            phone_number=phone,
            listing_id=listing.id if listing else None,
            state=state.value,
            conversation_type=kind.value,
            expires_at=expires_at or now + timedelta(hours=20),
            message_sent_at=stamp,
            created_at=stamp,
            updated_at=stamp,
        )
        values.update(fields)
        conversation = RenewalConversation(**values)
        db_session.add(conversation)
        db_session.flush()
        return conversation

    return _make
