"""Inbound SMS processing.

One call to ``RenewalSmsEngine.handle_inbound`` per webhook delivery:

1. validate the sender and body
2. take the per-phone lock
3. skip redeliveries (MessageSid already logged)
4. log the inbound message in its own transaction
5. route and transition in a single transaction
6. after commit, send queued replies and admin alerts

Nothing escapes ``handle_inbound``; every failure is logged, reported to the
admin and turned into a ``ProcessingResult``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.config import Settings, get_settings
from core.db import get_session_factory
from core.exceptions import (
    ConversationStateError,
    LockAcquisitionError,
    StoreError,
)
from core.logging_config import get_context_logger, get_logger
from core.types import Outbox, ProcessingResult
from core.utils import truncate, utcnow
from outreach.phone import normalize_phone_e164
from services.locking import PhoneLockService, get_phone_lock_service
from services.message_log import MessageLogService
from services.notification import CATEGORY_ERRORS, AdminAlertService, SmsTransport, deliver_outbox
from services.router import ConversationRouter
from services.state_machine import StateMachine

LOGGER = get_logger(__name__)

OUTCOME_CONFIGURATION_ERROR = "configuration_error"
OUTCOME_MALFORMED = "malformed"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_LOCK_TIMEOUT = "lock_timeout"
OUTCOME_STORE_ERROR = "store_error"
OUTCOME_ERROR = "error"


class RenewalSmsEngine:
    """
    Orchestrates the routing, state machine and delivery for inbound replies.

    Usage:
        engine = get_engine()
        result = engine.handle_inbound("+17185550100", "YES", "SM123")
    """

    def __init__(
        self,
        session_factory: Optional[Callable] = None,
        transport: Optional[SmsTransport] = None,
        lock_service: Optional[PhoneLockService] = None,
        clock: Callable[[], datetime] = utcnow,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.transport = transport
        self.locks = lock_service or get_phone_lock_service()
        self.clock = clock
        self.settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def handle_inbound(
        self,
        from_number: Optional[str],
        body: Optional[str],
        message_sid: Optional[str] = None,
    ) -> ProcessingResult:
        """
        Process one inbound SMS.

        Args:
            from_number: Raw ``From`` field.
            body: Raw ``Body`` field.
            message_sid: Transport message id, used for redelivery detection.

        Returns:
            ProcessingResult describing what happened.
        """
        if not self.settings.can_send_sms():
            LOGGER.critical(
                "Twilio credentials are not configured and DRY_RUN is off; "
                "inbound SMS cannot be processed"
            )
            return ProcessingResult(outcome=OUTCOME_CONFIGURATION_ERROR)

        if not from_number or not body or not body.strip():
            LOGGER.warning(f"Dropping inbound webhook missing From or Body (SID: {message_sid})")
            return ProcessingResult(outcome=OUTCOME_MALFORMED)

        phone = normalize_phone_e164(from_number)
        if phone is None:
            LOGGER.warning(f"Dropping inbound webhook with unparseable From {from_number!r}")
            return ProcessingResult(outcome=OUTCOME_MALFORMED)

        log = get_context_logger(__name__, phone=phone, message_sid=message_sid)
        log.info(f"Received SMS: {truncate(body)}")

        try:
            with self.locks.phone_lock(phone):
                return self._process(phone, body, message_sid)
        except LockAcquisitionError as e:
            log.error(f"Could not serialize processing: {e}")
            self._alert_failure("Inbound SMS not processed (lock timeout)", phone, body, e)
            return ProcessingResult(outcome=OUTCOME_LOCK_TIMEOUT)
        except (SQLAlchemyError, StoreError, ConversationStateError) as e:
            log.exception("Store error while processing inbound SMS; changes rolled back")
            self._alert_failure("Inbound SMS processing failed (store error)", phone, body, e)
            return ProcessingResult(outcome=OUTCOME_STORE_ERROR)
        except Exception as e:
            log.exception("Unexpected error while processing inbound SMS")
            self._alert_failure("Inbound SMS processing failed", phone, body, e)
            return ProcessingResult(outcome=OUTCOME_ERROR)

    def handle_status_callback(
        self,
        message_sid: Optional[str],
        status: Optional[str],
        error_message: Optional[str] = None,
    ) -> bool:
        """
        Record a delivery status callback on the matching outbound log entry.

        Returns:
            True if an entry was updated.
        """
        if not message_sid or not status:
            LOGGER.warning("Dropping status callback missing MessageSid or MessageStatus")
            return False

        with self.session_factory() as session:
            entry = MessageLogService(session).update_delivery_status(
                message_sid, status.lower(), error_message
            )
            return entry is not None

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _process(self, phone: str, body: str, message_sid: Optional[str]) -> ProcessingResult:
        with self.session_factory() as session:
            message_log = MessageLogService(session)
            if message_log.is_duplicate_inbound(message_sid):
                return ProcessingResult(outcome=OUTCOME_DUPLICATE)
            message_log.log_inbound(phone, body, message_sid)

        outbox = Outbox()
        with self.session_factory() as session:
            machine = StateMachine(session, outbox, now=self.clock(), settings=self.settings)
            router = ConversationRouter(machine)
            conversations = machine.store.routable_for_phone(phone)
            result = router.dispatch(phone, body, conversations)

        result.replies = [message.body for message in outbox.messages]
        self._deliver(outbox)

        LOGGER.info(
            f"Processed SMS from {phone}: {result.outcome} "
            f"(conversation {result.conversation_id}, state {result.state}, "
            f"{len(result.replies)} replies)"
        )
        return result

    def _deliver(self, outbox: Outbox) -> None:
        if not outbox.messages and not outbox.alerts:
            return
        try:
            with self.session_factory() as session:
                deliver_outbox(session, outbox, self.transport)
        except SQLAlchemyError:
            LOGGER.exception("Failed to record outbound messages")

    def _alert_failure(self, subject: str, phone: str, body: str, error: Exception) -> None:
        details = f"From: {phone}\nMessage: {body}\nError: {type(error).__name__}: {error}"
        try:
            with self.session_factory() as session:
                AdminAlertService(session, self.transport).notify(subject, details, CATEGORY_ERRORS)
        except Exception:
            LOGGER.exception(f"Failed to send admin alert: {subject}")


# Module-level singleton
_engine: Optional[RenewalSmsEngine] = None


def get_engine() -> RenewalSmsEngine:
    """Get the global RenewalSmsEngine instance."""
    global _engine
    if _engine is None:
        _engine = RenewalSmsEngine()
    return _engine


def set_engine(engine: Optional[RenewalSmsEngine]) -> None:
    """Replace the global engine (tests install one bound to a test database)."""
    global _engine
    _engine = engine


__all__ = [
    "RenewalSmsEngine",
    "get_engine",
    "set_engine",
    "OUTCOME_CONFIGURATION_ERROR",
    "OUTCOME_MALFORMED",
    "OUTCOME_DUPLICATE",
    "OUTCOME_LOCK_TIMEOUT",
    "OUTCOME_STORE_ERROR",
    "OUTCOME_ERROR",
]
