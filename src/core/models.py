"""SQLAlchemy ORM models for the listing renewal SMS engine."""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base
from core.utils import utcnow


# =============================================================================
# Enums
# =============================================================================


class ListingType(str, enum.Enum):
    """Listing kinds; drives rented/sold and tenant/buyer wording."""
    RENTAL = "rental"
    SALE = "sale"


class ConversationState(str, enum.Enum):
    """Renewal conversation states."""
    PENDING = "pending"                                      # Queued behind an earlier batch item
    AWAITING_AVAILABILITY = "awaiting_availability"
    AWAITING_HADIROT_QUESTION = "awaiting_hadirot_question"  # Attribution question sent
    AWAITING_LISTING_SELECTION = "awaiting_listing_selection"
    AWAITING_REPORT_RESPONSE = "awaiting_report_response"
    CALLBACK_SENT = "callback_sent"
    AWAITING_DISAMBIGUATION = "awaiting_disambiguation"
    COMPLETED = "completed"
    EXPIRED_LINK = "expired_link"                            # Reply arrived after expires_at
    TIMEOUT = "timeout"                                      # Swept without any reply


TERMINAL_STATES = frozenset({
    ConversationState.COMPLETED,
    ConversationState.EXPIRED_LINK,
    ConversationState.TIMEOUT,
})

# States whose prompt was a YES/NO question
YES_NO_STATES = frozenset({
    ConversationState.AWAITING_AVAILABILITY,
    ConversationState.AWAITING_REPORT_RESPONSE,
    ConversationState.AWAITING_HADIROT_QUESTION,
})


class ConversationKind(str, enum.Enum):
    """What started the conversation."""
    RENEWAL = "renewal"
    CALLBACK = "callback"
    REPORT_RENTED = "report_rented"
    DISAMBIGUATION = "disambiguation"
    UNSOLICITED = "unsolicited"


class ActionTaken(str, enum.Enum):
    """Outcome recorded on a conversation once it has been acted upon."""
    EXTENDED = "extended"
    DEACTIVATED = "deactivated"
    KEPT_ACTIVE = "kept_active"
    DISAMBIGUATED = "disambiguated"
    ACKNOWLEDGED = "acknowledged"
    EXPIRED_LINK = "expired_link"
    TIMEOUT = "timeout"
    AUTO_DEACTIVATED = "auto_deactivated"


class MessageDirection(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageSource(str, enum.Enum):
    """Tag recorded on every message log entry."""
    WEBHOOK_REPLY = "webhook_reply"
    SYSTEM_RESPONSE = "system_response"
    RENEWAL_REMINDER = "renewal_reminder"
    FALLBACK_RESPONSE = "fallback_response"
    ADMIN_ALERT = "admin_alert"


class DeliveryStatus(str, enum.Enum):
    RECEIVED = "received"
    SENT = "sent"
    DRY_RUN = "dry_run"
    FAILED = "failed"
    DELIVERED = "delivered"
    UNDELIVERED = "undelivered"


# =============================================================================
# Listing Model
# =============================================================================


class Listing(Base):
    """
    A rental or sale listing owned by the wider platform.

    The SMS engine only toggles activity, expiration and attribution fields;
    listings are never created or deleted here.
    """
    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    # Description
    listing_type: Mapped[str] = mapped_column(String(20), default=ListingType.RENTAL.value)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # Cross streets
    neighborhood: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    full_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True)
    asking_price: Mapped[Optional[float]] = mapped_column(Numeric(14, 2), nullable=True)

    # Contact
    contact_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    contact_phone_e164: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)

    # Lifecycle
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    approved: Mapped[bool] = mapped_column(Boolean, default=True)
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Whether the tenant/buyer found the listing through the platform
    hadirot_conversion: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    conversations: Mapped[list["RenewalConversation"]] = relationship(
        "RenewalConversation", back_populates="listing"
    )

    __table_args__ = (
        Index("ix_listings_phone_active", "contact_phone_e164", "is_active"),
    )

    @property
    def is_sale(self) -> bool:
        return self.listing_type == ListingType.SALE.value

    @property
    def rented_sold_word(self) -> str:
        return "sold" if self.is_sale else "rented"

    @property
    def tenant_buyer_word(self) -> str:
        return "buyer" if self.is_sale else "tenant"


# =============================================================================
# RenewalConversation Model
# =============================================================================


class RenewalConversation(Base):
    """
    One SMS dialogue with one phone number about one listing
    (or about which listing a reply refers to).
    """
    __tablename__ = "listing_renewal_conversations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    listing_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("listings.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Batch sequencing
    batch_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    listing_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_in_batch: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # State
    state: Mapped[str] = mapped_column(
        String(40), default=ConversationState.AWAITING_AVAILABILITY.value, nullable=False
    )
    conversation_type: Mapped[str] = mapped_column(
        String(20), default=ConversationKind.RENEWAL.value, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    conversation_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    # Outcome
    reply_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_taken: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    hadirot_conversion: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    # Timestamps
    message_sid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    message_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reply_received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    listing: Mapped[Optional["Listing"]] = relationship("Listing", back_populates="conversations")

    __table_args__ = (
        Index("ix_renewal_conv_phone_state", "phone_number", "state"),
        Index("ix_renewal_conv_batch", "batch_id", "listing_index"),
        Index("ix_renewal_conv_state_expires", "state", "expires_at"),
    )

    @property
    def state_enum(self) -> ConversationState:
        return ConversationState(self.state)

    @property
    def kind(self) -> ConversationKind:
        return ConversationKind(self.conversation_type)

    @property
    def is_terminal(self) -> bool:
        return self.state_enum in TERMINAL_STATES

    def __repr__(self) -> str:
        return (
            f"<RenewalConversation id={self.id} phone={self.phone_number} "
            f"state={self.state} listing={self.listing_id}>"
        )


# =============================================================================
# SmsMessage Model
# =============================================================================


class SmsMessage(Base):
    """
    Append-only log of every inbound and outbound SMS.
    """
    __tablename__ = "sms_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("listing_renewal_conversations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    listing_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("listings.id", ondelete="SET NULL"), nullable=True
    )

    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    message_body: Mapped[str] = mapped_column(Text, nullable=False)
    message_sid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    message_source: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=DeliveryStatus.SENT.value)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_sms_messages_phone_created", "phone_number", "created_at"),
        Index("ix_sms_messages_source_phone", "message_source", "phone_number", "created_at"),
    )


# =============================================================================
# SmsAdminConfig Model
# =============================================================================


class SmsAdminConfig(Base):
    """
    Singleton row controlling which anomalies page the admin.
    """
    __tablename__ = "sms_admin_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    admin_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notify_on_errors: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_on_unrecognized: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_on_timeouts: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# =============================================================================
# PhoneLock Model
# =============================================================================


class PhoneLock(Base):
    """
    Lease row serializing webhook processing per phone number across workers.
    """
    __tablename__ = "phone_lock"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lock_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    locked_by: Mapped[str] = mapped_column(String(64), nullable=False)
    locked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


__all__ = [
    "ListingType",
    "ConversationState",
    "ConversationKind",
    "ActionTaken",
    "MessageDirection",
    "MessageSource",
    "DeliveryStatus",
    "TERMINAL_STATES",
    "YES_NO_STATES",
    "Listing",
    "RenewalConversation",
    "SmsMessage",
    "SmsAdminConfig",
    "PhoneLock",
]
