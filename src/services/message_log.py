"""Append-only SMS message log.

Every inbound webhook and every outbound send is recorded here. The log is
also the source of truth for duplicate webhook detection and for the
fallback-reply cooldown.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from core.logging_config import get_logger
from core.models import DeliveryStatus, MessageDirection, MessageSource, SmsMessage
from core.utils import truncate

LOGGER = get_logger(__name__)


class MessageLogService:
    """Service for reading and appending SMS log entries."""

    def __init__(self, session: Session):
        self.session = session

    def log_inbound(
        self,
        phone: str,
        body: str,
        message_sid: Optional[str] = None,
    ) -> SmsMessage:
        """Record an inbound webhook message."""
        entry = SmsMessage(
            direction=MessageDirection.INBOUND.value,
            phone_number=phone,
            message_body=body,
            message_sid=message_sid,
            message_source=MessageSource.WEBHOOK_REPLY.value,
            status=DeliveryStatus.RECEIVED.value,
        )
        self.session.add(entry)
        self.session.flush()
        LOGGER.info(f"Logged inbound SMS from {phone} (SID: {message_sid}): {truncate(body)}")
        return entry

    def log_outbound(
        self,
        phone: str,
        body: str,
        source: str,
        status: str,
        message_sid: Optional[str] = None,
        error_message: Optional[str] = None,
        conversation_id: Optional[int] = None,
        listing_id: Optional[int] = None,
    ) -> SmsMessage:
        """Record the outcome of an outbound send."""
        entry = SmsMessage(
            direction=MessageDirection.OUTBOUND.value,
            phone_number=phone,
            message_body=body,
            message_sid=message_sid,
            message_source=source,
            status=status,
            error_message=error_message,
            conversation_id=conversation_id,
            listing_id=listing_id,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def is_duplicate_inbound(self, message_sid: Optional[str]) -> bool:
        """
        Check whether an inbound message with this SID was already logged.

        Messages without a SID can never be recognized as redeliveries.
        """
        if not message_sid:
            return False

        exists = self.session.query(SmsMessage.id).filter(
            SmsMessage.message_sid == message_sid,
            SmsMessage.direction == MessageDirection.INBOUND.value,
        ).first() is not None

        if exists:
            LOGGER.info(f"Duplicate inbound MessageSid detected: {message_sid}")

        return exists

    def last_outbound(
        self,
        phone: str,
        source: str,
        since: Optional[datetime] = None,
    ) -> Optional[SmsMessage]:
        """Most recent outbound entry to a phone with the given source tag."""
        query = self.session.query(SmsMessage).filter(
            SmsMessage.direction == MessageDirection.OUTBOUND.value,
            SmsMessage.phone_number == phone,
            SmsMessage.message_source == source,
        )
        if since is not None:
            query = query.filter(SmsMessage.created_at >= since)
        return query.order_by(SmsMessage.created_at.desc(), SmsMessage.id.desc()).first()

    def update_delivery_status(
        self,
        message_sid: str,
        status: str,
        error_message: Optional[str] = None,
    ) -> Optional[SmsMessage]:
        """
        Apply a transport delivery callback to the matching outbound entry.

        Returns:
            The updated entry, or None if no outbound entry has this SID.
        """
        entry = self.session.query(SmsMessage).filter(
            SmsMessage.message_sid == message_sid,
            SmsMessage.direction == MessageDirection.OUTBOUND.value,
        ).first()

        if entry is None:
            LOGGER.warning(f"Status callback for unknown MessageSid {message_sid}")
            return None

        entry.status = status
        if error_message:
            entry.error_message = error_message
        self.session.flush()
        return entry


__all__ = [
    "MessageLogService",
]
