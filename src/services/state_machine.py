"""Per-conversation state machine.

Transitions are looked up in ``TRANSITIONS`` keyed by (state, intent), with a
per-state default in ``DEFAULTS``. Two guards run before any lookup:

1. A conversation in a terminal state is never changed again.
2. A conversation past its ``expires_at`` can only move to ``expired_link``.

Listing mutations and conversation updates are flushed into the caller's
session; outbound messages are queued on the ``Outbox`` and sent by the
engine after commit.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from core.config import Settings, get_settings
from core.exceptions import ConversationStateError
from core.logging_config import get_logger
from core.models import (
    ActionTaken,
    ConversationState,
    Listing,
    MessageSource,
    RenewalConversation,
)
from core.types import Outbox, ProcessingResult, SelectionMetadata, parse_conversation_metadata
from core.utils import ensure_aware, truncate, utcnow
from services import messages
from services.batch_sequencer import BatchSequencer
from services.conversation_store import ConversationStore
from services.intent_classifier import Classification, Intent, classify_intent

LOGGER = get_logger(__name__)

S = ConversationState

# Outcomes reported back to the engine
OUTCOME_TRANSITIONED = "transitioned"
OUTCOME_REPROMPTED = "reprompted"
OUTCOME_IGNORED = "ignored"
OUTCOME_EXPIRED = "expired"
OUTCOME_TERMINAL_NOOP = "terminal_noop"


class StateMachine:
    """
    Applies one inbound reply to one conversation.

    Usage:
        machine = StateMachine(session, outbox)
        result = machine.apply(conversation, "YES")
    """

    def __init__(
        self,
        session: Session,
        outbox: Outbox,
        now: Optional[datetime] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.outbox = outbox
        self.now = now or utcnow()
        self.settings = settings or get_settings()
        self.store = ConversationStore(session)
        self.sequencer = BatchSequencer(self.store, outbox)

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def is_expired(self, conversation: RenewalConversation) -> bool:
        expires_at = ensure_aware(conversation.expires_at)
        return expires_at is not None and self.now > expires_at

    def _result(self, outcome: str, conversation: RenewalConversation) -> ProcessingResult:
        return ProcessingResult(
            outcome=outcome,
            conversation_id=conversation.id,
            state=conversation.state,
            action=conversation.action_taken,
        )

    def expire(self, conversation: RenewalConversation, text: str) -> ProcessingResult:
        """Close an expired conversation and point the owner at the dashboard."""
        LOGGER.info(f"Conversation {conversation.id} expired at {conversation.expires_at}")
        self.store.update(
            conversation,
            now=self.now,
            state=S.EXPIRED_LINK,
            action_taken=ActionTaken.EXPIRED_LINK.value,
            reply_text=text,
            reply_received_at=self.now,
        )
        self._reply(conversation, messages.expired_link())
        return self._result(OUTCOME_EXPIRED, conversation)

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def apply(self, conversation: RenewalConversation, text: str) -> ProcessingResult:
        """
        Classify ``text`` against the conversation's state and run the transition.

        Raises:
            ConversationStateError: For pending and awaiting_disambiguation
                conversations, which are not driven by this table.
        """
        if conversation.is_terminal:
            LOGGER.info(
                f"Conversation {conversation.id} already {conversation.state}; ignoring reply"
            )
            return self._result(OUTCOME_TERMINAL_NOOP, conversation)

        if self.is_expired(conversation):
            return self.expire(conversation, text)

        state = conversation.state_enum
        if state in (S.PENDING, S.AWAITING_DISAMBIGUATION):
            raise ConversationStateError(
                f"Conversation {conversation.id} in {state.value} cannot take replies directly"
            )

        classification = classify_intent(text, state)
        handler = TRANSITIONS.get((state, classification.intent)) or DEFAULTS[state]

        LOGGER.info(
            f"Conversation {conversation.id}: {state.value} + {classification.intent.value} "
            f"({classification.confidence.value}) -> {handler.__name__} | {truncate(text)}"
        )

        self.store.record_reply(conversation, text, self.now)
        return handler(self, conversation, classification)

    def acknowledge(self, conversation: RenewalConversation, text: str) -> ProcessingResult:
        """Close a conversation on an acknowledgment without replying."""
        if conversation.is_terminal:
            return self._result(OUTCOME_TERMINAL_NOOP, conversation)
        if self.is_expired(conversation):
            return self.expire(conversation, text)

        self.store.record_reply(conversation, text, self.now)
        return self._close_acknowledged(conversation, None)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _reply(
        self,
        conversation: RenewalConversation,
        body: str,
        listing: Optional[Listing] = None,
    ) -> None:
        self.outbox.sms(
            conversation.phone_number,
            body,
            MessageSource.SYSTEM_RESPONSE.value,
            conversation_id=conversation.id,
            listing_id=listing.id if listing else conversation.listing_id,
        )

    def _touch(self, conversation: RenewalConversation) -> None:
        self.store.update(conversation, now=self.now)

    def _deactivate_and_ask(
        self,
        conversation: RenewalConversation,
        listing: Listing,
    ) -> ProcessingResult:
        self.store.deactivate_listing(listing, self.now)
        self.store.update(
            conversation,
            now=self.now,
            listing_id=listing.id,
            state=S.AWAITING_HADIROT_QUESTION,
        )
        self._reply(conversation, messages.attribution_question(listing), listing)
        return self._result(OUTCOME_TRANSITIONED, conversation)

    # -------------------------------------------------------------------------
    # awaiting_availability
    # -------------------------------------------------------------------------

    def _extend(self, conversation: RenewalConversation, classification: Classification) -> ProcessingResult:
        listing = self.store.require_listing(conversation.listing_id)
        days = self.settings.renewal_window_days
        new_expires_at = self.store.extend_listing(listing, days, self.now)

        self.store.update(
            conversation,
            now=self.now,
            state=S.COMPLETED,
            action_taken=ActionTaken.EXTENDED.value,
        )
        self._reply(conversation, messages.extended_confirmation(new_expires_at, days), listing)
        self.sequencer.advance(conversation, self.now)
        return self._result(OUTCOME_TRANSITIONED, conversation)

    def _deactivate(self, conversation: RenewalConversation, classification: Classification) -> ProcessingResult:
        listing = self.store.require_listing(conversation.listing_id)
        return self._deactivate_and_ask(conversation, listing)

    def _availability_help(self, conversation: RenewalConversation, classification: Classification) -> ProcessingResult:
        listing = self.store.require_listing(conversation.listing_id)

        batch_listings = []
        if conversation.batch_id:
            for member in self.store.open_in_batch(conversation.batch_id):
                member_listing = self.store.get_listing(member.listing_id)
                if member_listing is not None:
                    batch_listings.append(member_listing)

        if batch_listings:
            body = messages.batch_summary(batch_listings, conversation.listing_index)
        else:
            body = messages.single_listing_help(listing, ensure_aware(listing.expires_at))

        self._touch(conversation)
        self._reply(conversation, body, listing)
        return self._result(OUTCOME_REPROMPTED, conversation)

    def _availability_reprompt(self, conversation: RenewalConversation, classification: Classification) -> ProcessingResult:
        listing = self.store.get_listing(conversation.listing_id)
        self._touch(conversation)
        self._reply(conversation, messages.yes_no_prompt(listing), listing)
        return self._result(OUTCOME_REPROMPTED, conversation)

    # -------------------------------------------------------------------------
    # awaiting_hadirot_question
    # -------------------------------------------------------------------------

    def _record_attribution(self, conversation: RenewalConversation, classification: Classification) -> ProcessingResult:
        answer = classification.intent == Intent.AFFIRMATIVE
        listing = self.store.get_listing(conversation.listing_id)
        if listing is None:
            LOGGER.warning(f"Conversation {conversation.id} has no listing to attribute")
        self.store.set_attribution(listing, answer, self.now)

        self.store.update(
            conversation,
            now=self.now,
            state=S.COMPLETED,
            action_taken=ActionTaken.DEACTIVATED.value,
            hadirot_conversion=answer,
        )
        self._reply(conversation, messages.attribution_thanks(), listing)
        self.sequencer.advance(conversation, self.now)
        return self._result(OUTCOME_TRANSITIONED, conversation)

    def _ignore(self, conversation: RenewalConversation, classification: Classification) -> ProcessingResult:
        self._touch(conversation)
        return self._result(OUTCOME_IGNORED, conversation)

    # -------------------------------------------------------------------------
    # awaiting_listing_selection
    # -------------------------------------------------------------------------

    def _selection_metadata(self, conversation: RenewalConversation) -> SelectionMetadata:
        metadata = parse_conversation_metadata(conversation.conversation_metadata)
        if not isinstance(metadata, SelectionMetadata):
            raise ConversationStateError(
                f"Conversation {conversation.id} is awaiting selection without selection metadata"
            )
        return metadata

    def _select_listing(self, conversation: RenewalConversation, classification: Classification) -> ProcessingResult:
        metadata = self._selection_metadata(conversation)
        number = classification.selection
        if number is None or not 1 <= number <= len(metadata.candidates):
            return self._resend_selection_menu(conversation, classification)

        chosen = metadata.candidates[number - 1]
        listing = self.store.require_listing(chosen.listing_id)
        LOGGER.info(f"Conversation {conversation.id}: selected listing {listing.id} ({number})")
        return self._deactivate_and_ask(conversation, listing)

    def _resend_selection_menu(self, conversation: RenewalConversation, classification: Classification) -> ProcessingResult:
        metadata = self._selection_metadata(conversation)
        self._touch(conversation)
        self._reply(conversation, messages.selection_menu([c.label for c in metadata.candidates]))
        return self._result(OUTCOME_REPROMPTED, conversation)

    # -------------------------------------------------------------------------
    # awaiting_report_response
    # -------------------------------------------------------------------------

    def _keep_active(self, conversation: RenewalConversation, classification: Classification) -> ProcessingResult:
        listing = self.store.get_listing(conversation.listing_id)
        self.store.update(
            conversation,
            now=self.now,
            state=S.COMPLETED,
            action_taken=ActionTaken.KEPT_ACTIVE.value,
        )
        self._reply(conversation, messages.kept_active_confirmation(listing), listing)
        return self._result(OUTCOME_TRANSITIONED, conversation)

    def _report_reprompt(self, conversation: RenewalConversation, classification: Classification) -> ProcessingResult:
        listing = self.store.get_listing(conversation.listing_id)
        self._touch(conversation)
        self._reply(conversation, messages.report_prompt(listing), listing)
        return self._result(OUTCOME_REPROMPTED, conversation)

    # -------------------------------------------------------------------------
    # callback_sent
    # -------------------------------------------------------------------------

    def _close_acknowledged(
        self,
        conversation: RenewalConversation,
        classification: Optional[Classification],
    ) -> ProcessingResult:
        self.store.update(
            conversation,
            now=self.now,
            state=S.COMPLETED,
            action_taken=ActionTaken.ACKNOWLEDGED.value,
        )
        return self._result(OUTCOME_TRANSITIONED, conversation)


Handler = Callable[[StateMachine, RenewalConversation, Classification], ProcessingResult]

TRANSITIONS: Dict[Tuple[ConversationState, Intent], Handler] = {
    (S.AWAITING_AVAILABILITY, Intent.AFFIRMATIVE): StateMachine._extend,
    (S.AWAITING_AVAILABILITY, Intent.NEGATIVE): StateMachine._deactivate,
    (S.AWAITING_AVAILABILITY, Intent.DEACTIVATION): StateMachine._deactivate,
    (S.AWAITING_AVAILABILITY, Intent.HELP): StateMachine._availability_help,
    (S.AWAITING_HADIROT_QUESTION, Intent.AFFIRMATIVE): StateMachine._record_attribution,
    (S.AWAITING_HADIROT_QUESTION, Intent.NEGATIVE): StateMachine._record_attribution,
    (S.AWAITING_LISTING_SELECTION, Intent.SELECTION): StateMachine._select_listing,
    (S.AWAITING_REPORT_RESPONSE, Intent.AFFIRMATIVE): StateMachine._keep_active,
    (S.AWAITING_REPORT_RESPONSE, Intent.NEGATIVE): StateMachine._deactivate,
    (S.AWAITING_REPORT_RESPONSE, Intent.DEACTIVATION): StateMachine._deactivate,
    (S.CALLBACK_SENT, Intent.DEACTIVATION): StateMachine._deactivate,
}

DEFAULTS: Dict[ConversationState, Handler] = {
    S.AWAITING_AVAILABILITY: StateMachine._availability_reprompt,
    # Never re-prompts
    S.AWAITING_HADIROT_QUESTION: StateMachine._ignore,
    S.AWAITING_LISTING_SELECTION: StateMachine._resend_selection_menu,
    S.AWAITING_REPORT_RESPONSE: StateMachine._report_reprompt,
    S.CALLBACK_SENT: StateMachine._close_acknowledged,
}


__all__ = [
    "StateMachine",
    "TRANSITIONS",
    "DEFAULTS",
    "OUTCOME_TRANSITIONED",
    "OUTCOME_REPROMPTED",
    "OUTCOME_IGNORED",
    "OUTCOME_EXPIRED",
    "OUTCOME_TERMINAL_NOOP",
]
