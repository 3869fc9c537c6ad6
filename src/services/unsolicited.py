"""Handling for messages from phones with no open conversation."""
from __future__ import annotations

from datetime import timedelta
from typing import List

from core.logging_config import get_logger
from core.models import (
    ConversationKind,
    ConversationState,
    Listing,
    MessageSource,
)
from core.types import ProcessingResult, SelectionCandidate, SelectionMetadata
from core.utils import truncate
from services import messages
from services.intent_classifier import Intent, classify_intent
from services.message_log import MessageLogService
from services.notification import CATEGORY_UNRECOGNIZED
from services.state_machine import StateMachine

LOGGER = get_logger(__name__)


class UnsolicitedFlow:
    """
    Deactivation requests and fallback replies for unsolicited messages.

    A deactivation keyword is matched against the sender's active, approved
    listings. Anything else gets at most one fallback reply per cooldown
    window.
    """

    def __init__(self, machine: StateMachine):
        self.machine = machine
        self.store = machine.store
        self.outbox = machine.outbox
        self.settings = machine.settings
        self.log = MessageLogService(machine.session)

    @property
    def now(self):
        return self.machine.now

    def handle(self, phone: str, text: str) -> ProcessingResult:
        classification = classify_intent(text, None)
        LOGGER.info(
            f"Unsolicited message from {phone} classified as {classification.intent.value}: {truncate(text)}"
        )
        if classification.intent == Intent.DEACTIVATION:
            return self._deactivation(phone, text)
        return self._fallback(phone, text)

    # -------------------------------------------------------------------------
    # Deactivation
    # -------------------------------------------------------------------------

    def _expires_at(self):
        return self.now + timedelta(hours=self.settings.conversation_timeout_hours)

    def _deactivation(self, phone: str, text: str) -> ProcessingResult:
        listings = self.store.active_listings_for_phone(phone)

        if not listings:
            self.outbox.sms(phone, messages.no_matching_listing(), MessageSource.SYSTEM_RESPONSE.value)
            self.outbox.alert(
                "Deactivation request with no matching listing",
                f"From: {phone}\nMessage: {text}",
                CATEGORY_UNRECOGNIZED,
            )
            return ProcessingResult(outcome="no_matching_listing")

        if len(listings) == 1:
            return self._deactivate_single(phone, text, listings[0])

        if len(listings) <= self.settings.max_selection_candidates:
            return self._offer_selection(phone, text, listings)

        LOGGER.info(f"{phone} has {len(listings)} active listings; redirecting to dashboard")
        self.outbox.sms(phone, messages.too_many_listings(len(listings)), MessageSource.SYSTEM_RESPONSE.value)
        return ProcessingResult(outcome="dashboard_redirect")

    def _deactivate_single(self, phone: str, text: str, listing: Listing) -> ProcessingResult:
        self.store.deactivate_listing(listing, self.now)
        conversation = self.store.create(
            phone=phone,
            state=ConversationState.AWAITING_HADIROT_QUESTION,
            kind=ConversationKind.UNSOLICITED.value,
            expires_at=self._expires_at(),
            listing_id=listing.id,
            now=self.now,
            reply_text=text,
            reply_received_at=self.now,
        )
        self.outbox.sms(
            phone,
            messages.attribution_question(listing),
            MessageSource.SYSTEM_RESPONSE.value,
            conversation_id=conversation.id,
            listing_id=listing.id,
        )
        return ProcessingResult(
            outcome="deactivated",
            conversation_id=conversation.id,
            state=conversation.state,
        )

    def _offer_selection(self, phone: str, text: str, listings: List[Listing]) -> ProcessingResult:
        metadata = SelectionMetadata(
            candidates=[
                SelectionCandidate(listing_id=l.id, label=messages.listing_descriptor(l))
                for l in listings
            ]
        )
        conversation = self.store.create(
            phone=phone,
            state=ConversationState.AWAITING_LISTING_SELECTION,
            kind=ConversationKind.UNSOLICITED.value,
            expires_at=self._expires_at(),
            metadata=metadata.model_dump(),
            now=self.now,
            reply_text=text,
            reply_received_at=self.now,
        )
        self.outbox.sms(
            phone,
            messages.selection_menu([c.label for c in metadata.candidates]),
            MessageSource.SYSTEM_RESPONSE.value,
            conversation_id=conversation.id,
        )
        return ProcessingResult(
            outcome="selection_prompted",
            conversation_id=conversation.id,
            state=conversation.state,
        )

    # -------------------------------------------------------------------------
    # Fallback
    # -------------------------------------------------------------------------

    def _in_cooldown(self, phone: str) -> bool:
        hours = self.settings.fallback_cooldown_hours
        if hours <= 0:
            return False
        since = self.now - timedelta(hours=hours)
        return self.log.last_outbound(phone, MessageSource.FALLBACK_RESPONSE.value, since) is not None

    def _fallback(self, phone: str, text: str) -> ProcessingResult:
        if self._in_cooldown(phone):
            LOGGER.info(f"Fallback reply to {phone} suppressed (cooldown)")
            return ProcessingResult(outcome="fallback_suppressed")

        if self.store.has_any_listing(phone):
            self.outbox.sms(phone, messages.fallback_with_listings(), MessageSource.FALLBACK_RESPONSE.value)
            return ProcessingResult(outcome="fallback")

        self.outbox.sms(phone, messages.fallback_unlinked(), MessageSource.FALLBACK_RESPONSE.value)
        self.outbox.alert(
            "SMS from unrecognized number",
            f"From: {phone}\nMessage: {text}",
            CATEGORY_UNRECOGNIZED,
        )
        return ProcessingResult(outcome="fallback_unlinked")


__all__ = ["UnsolicitedFlow"]
