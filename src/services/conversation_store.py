"""Thin accessor over conversation and listing records."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from core.exceptions import ListingNotFoundError
from core.logging_config import get_logger
from core.models import (
    TERMINAL_STATES,
    ConversationState,
    Listing,
    RenewalConversation,
)
from core.utils import ensure_aware, utcnow

LOGGER = get_logger(__name__)

_TERMINAL_VALUES = [s.value for s in TERMINAL_STATES]


class ConversationStore:
    """
    Reads and writes conversations and the listing fields the engine owns.

    All writes are flushed, never committed; the caller owns the transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    # -------------------------------------------------------------------------
    # Conversations
    # -------------------------------------------------------------------------

    def get(self, conversation_id: int) -> Optional[RenewalConversation]:
        return self.session.get(RenewalConversation, conversation_id)

    def routable_for_phone(self, phone: str) -> List[RenewalConversation]:
        """
        Non-terminal, non-pending conversations for a phone, newest first.
        """
        return (
            self.session.query(RenewalConversation)
            .filter(
                RenewalConversation.phone_number == phone,
                RenewalConversation.state.notin_(_TERMINAL_VALUES),
                RenewalConversation.state != ConversationState.PENDING.value,
            )
            .order_by(RenewalConversation.updated_at.desc(), RenewalConversation.id.desc())
            .all()
        )

    def create(
        self,
        phone: str,
        state: ConversationState,
        kind: str,
        expires_at: datetime,
        listing_id: Optional[int] = None,
        metadata: Optional[dict] = None,
        now: Optional[datetime] = None,
        **fields: Any,
    ) -> RenewalConversation:
        now = now or utcnow()
        conversation = RenewalConversation(
            phone_number=phone,
            listing_id=listing_id,
            state=state.value,
            conversation_type=kind,
            expires_at=expires_at,
            conversation_metadata=metadata,
            message_sent_at=now,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.session.add(conversation)
        self.session.flush()
        LOGGER.info(f"Created {kind} conversation {conversation.id} for {phone} in {state.value}")
        return conversation

    def update(
        self,
        conversation: RenewalConversation,
        now: Optional[datetime] = None,
        **fields: Any,
    ) -> RenewalConversation:
        """Set fields on a conversation and bump updated_at."""
        for key, value in fields.items():
            if isinstance(value, ConversationState):
                value = value.value
            setattr(conversation, key, value)
        conversation.updated_at = now or utcnow()
        self.session.flush()
        return conversation

    def record_reply(
        self,
        conversation: RenewalConversation,
        text: str,
        now: datetime,
    ) -> None:
        conversation.reply_text = text
        conversation.reply_received_at = now

    def next_pending_in_batch(
        self,
        batch_id: str,
        after_index: int,
    ) -> Optional[RenewalConversation]:
        return (
            self.session.query(RenewalConversation)
            .filter(
                RenewalConversation.batch_id == batch_id,
                RenewalConversation.state == ConversationState.PENDING.value,
                RenewalConversation.listing_index > after_index,
            )
            .order_by(RenewalConversation.listing_index.asc())
            .first()
        )

    def open_in_batch(self, batch_id: str) -> List[RenewalConversation]:
        """Pending and awaiting-availability conversations of a batch, in order."""
        return (
            self.session.query(RenewalConversation)
            .filter(
                RenewalConversation.batch_id == batch_id,
                RenewalConversation.state.in_([
                    ConversationState.PENDING.value,
                    ConversationState.AWAITING_AVAILABILITY.value,
                ]),
            )
            .order_by(RenewalConversation.listing_index.asc())
            .all()
        )

    def expired_open(self, now: datetime) -> List[RenewalConversation]:
        """Non-terminal conversations whose expires_at has passed."""
        return (
            self.session.query(RenewalConversation)
            .filter(
                RenewalConversation.state.notin_(_TERMINAL_VALUES),
                RenewalConversation.expires_at < now,
            )
            .order_by(RenewalConversation.id.asc())
            .all()
        )

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def get_listing(self, listing_id: Optional[int]) -> Optional[Listing]:
        if listing_id is None:
            return None
        return self.session.get(Listing, listing_id)

    def require_listing(self, listing_id: Optional[int]) -> Listing:
        listing = self.get_listing(listing_id)
        if listing is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        return listing

    def active_listings_for_phone(self, phone: str) -> List[Listing]:
        """Active, approved listings whose contact phone matches."""
        return (
            self.session.query(Listing)
            .filter(
                Listing.contact_phone_e164 == phone,
                Listing.is_active.is_(True),
                Listing.approved.is_(True),
            )
            .order_by(Listing.id.asc())
            .all()
        )

    def has_any_listing(self, phone: str) -> bool:
        return self.session.query(Listing.id).filter(
            Listing.contact_phone_e164 == phone
        ).first() is not None

    def extend_listing(self, listing: Listing, days: int, now: datetime) -> datetime:
        """
        Renew a listing for ``days`` from the later of now and its current expiration.

        Returns:
            The new expiration.
        """
        current = ensure_aware(listing.expires_at)
        base = max(now, current) if current else now
        new_expires_at = base + timedelta(days=days)

        listing.expires_at = new_expires_at
        listing.is_active = True
        listing.deactivated_at = None
        listing.last_published_at = now
        listing.updated_at = now
        self.session.flush()

        LOGGER.info(f"Extended listing {listing.id} to {new_expires_at.isoformat()}")
        return new_expires_at

    def deactivate_listing(self, listing: Listing, now: datetime) -> None:
        """Mark a listing inactive, keeping the original deactivation time if already inactive."""
        if listing.is_active or listing.deactivated_at is None:
            listing.deactivated_at = now
        listing.is_active = False
        listing.updated_at = now
        self.session.flush()
        LOGGER.info(f"Deactivated listing {listing.id}")

    def set_attribution(self, listing: Optional[Listing], value: bool, now: datetime) -> None:
        if listing is None:
            return
        listing.hadirot_conversion = value
        listing.updated_at = now
        self.session.flush()


__all__ = [
    "ConversationStore",
]
