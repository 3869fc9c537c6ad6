"""Disambiguation: asking which listing an ambiguous reply is about.

The manager only decides which conversation a reply belongs to. Once a
target is chosen the reply is replayed through the ``StateMachine``, so the
transition logic lives in exactly one place.
"""
from __future__ import annotations

from datetime import timedelta
from typing import List, Optional

from core.logging_config import get_logger
from core.models import (
    ActionTaken,
    ConversationKind,
    ConversationState,
    MessageSource,
    RenewalConversation,
)
from core.exceptions import ConversationStateError
from core.types import (
    DisambiguationCandidate,
    DisambiguationMetadata,
    ProcessingResult,
    parse_conversation_metadata,
)
from services import messages
from services.intent_classifier import Intent, classify_intent
from services.state_machine import StateMachine

LOGGER = get_logger(__name__)

OUTCOME_PROMPTED = "disambiguation_prompted"
OUTCOME_TARGET_CLOSED = "target_closed"


class DisambiguationManager:
    """Builds and resolves "which listing?" conversations."""

    def __init__(self, machine: StateMachine):
        self.machine = machine
        self.store = machine.store
        self.outbox = machine.outbox
        self.settings = machine.settings

    @property
    def now(self):
        return self.machine.now

    def _reply(self, conversation: RenewalConversation, body: str) -> None:
        self.outbox.sms(
            conversation.phone_number,
            body,
            MessageSource.SYSTEM_RESPONSE.value,
            conversation_id=conversation.id,
        )

    def _candidates(self, conversations: List[RenewalConversation]) -> List[DisambiguationCandidate]:
        limit = self.settings.max_disambiguation_candidates
        candidates = []
        for conversation in conversations[:limit]:
            listing = self.store.get_listing(conversation.listing_id)
            candidates.append(
                DisambiguationCandidate(
                    conversation_id=conversation.id,
                    listing_id=conversation.listing_id,
                    label=messages.listing_descriptor(listing, conversation.conversation_type),
                )
            )
        return candidates

    # -------------------------------------------------------------------------
    # Prompt
    # -------------------------------------------------------------------------

    def prompt(
        self,
        phone: str,
        text: str,
        conversations: List[RenewalConversation],
    ) -> ProcessingResult:
        """
        Open a disambiguation conversation and send the numbered menu.

        Args:
            phone: Sender phone (E.164).
            text: The ambiguous reply, replayed once the owner picks.
            conversations: Candidate conversations, newest first.
        """
        if len(conversations) > self.settings.max_disambiguation_candidates:
            LOGGER.info(
                f"{phone} has {len(conversations)} open conversations; "
                f"offering the newest {self.settings.max_disambiguation_candidates}"
            )

        metadata = DisambiguationMetadata(
            original_reply=text,
            candidates=self._candidates(conversations),
        )
        conversation = self.store.create(
            phone=phone,
            state=ConversationState.AWAITING_DISAMBIGUATION,
            kind=ConversationKind.DISAMBIGUATION.value,
            expires_at=self.now + timedelta(hours=self.settings.disambiguation_timeout_hours),
            metadata=metadata.model_dump(),
            now=self.now,
        )
        self._reply(conversation, messages.disambiguation_menu([c.label for c in metadata.candidates]))

        return ProcessingResult(
            outcome=OUTCOME_PROMPTED,
            conversation_id=conversation.id,
            state=conversation.state,
        )

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def _metadata(self, conversation: RenewalConversation) -> DisambiguationMetadata:
        metadata = parse_conversation_metadata(conversation.conversation_metadata)
        if not isinstance(metadata, DisambiguationMetadata):
            raise ConversationStateError(
                f"Disambiguation conversation {conversation.id} has no candidate metadata"
            )
        return metadata

    def _implicit_candidate(self, metadata: DisambiguationMetadata) -> Optional[DisambiguationCandidate]:
        """The only candidate whose listing is still active, if exactly one is."""
        active = []
        for candidate in metadata.candidates:
            listing = self.store.get_listing(candidate.listing_id)
            if listing is not None and listing.is_active:
                active.append(candidate)
        return active[0] if len(active) == 1 else None

    def _reprompt(self, conversation: RenewalConversation, body: str) -> ProcessingResult:
        self.store.update(conversation, now=self.now)
        self._reply(conversation, body)
        return ProcessingResult(
            outcome="reprompted",
            conversation_id=conversation.id,
            state=conversation.state,
        )

    def resolve(self, conversation: RenewalConversation, text: str) -> ProcessingResult:
        """
        Apply a reply to an open disambiguation conversation.

        A valid number replays the original ambiguous reply against the chosen
        conversation. A deactivation reply with exactly one still-active
        candidate selects it implicitly and is itself replayed.
        """
        if conversation.is_terminal:
            return ProcessingResult(
                outcome="terminal_noop",
                conversation_id=conversation.id,
                state=conversation.state,
                action=conversation.action_taken,
            )

        if self.machine.is_expired(conversation):
            return self.machine.expire(conversation, text)

        metadata = self._metadata(conversation)
        self.store.record_reply(conversation, text, self.now)

        classification = classify_intent(text, ConversationState.AWAITING_DISAMBIGUATION)
        target: Optional[DisambiguationCandidate] = None
        replay_text = metadata.original_reply

        if classification.intent == Intent.SELECTION:
            number = classification.selection
            if 1 <= number <= len(metadata.candidates):
                target = metadata.candidates[number - 1]
        elif classification.intent == Intent.DEACTIVATION:
            target = self._implicit_candidate(metadata)
            replay_text = text
        elif classification.intent == Intent.HELP:
            return self._reprompt(
                conversation,
                messages.disambiguation_menu([c.label for c in metadata.candidates]),
            )

        if target is None:
            return self._reprompt(conversation, messages.invalid_number(len(metadata.candidates)))

        self.store.update(
            conversation,
            now=self.now,
            state=ConversationState.COMPLETED,
            action_taken=ActionTaken.DISAMBIGUATED.value,
        )

        target_conversation = self.store.get(target.conversation_id)
        if (
            target_conversation is None
            or target_conversation.is_terminal
            or self.machine.is_expired(target_conversation)
        ):
            LOGGER.info(
                f"Disambiguation {conversation.id}: target {target.conversation_id} is no longer open"
            )
            self._reply(conversation, messages.conversation_closed())
            return ProcessingResult(
                outcome=OUTCOME_TARGET_CLOSED,
                conversation_id=target.conversation_id,
                state=target_conversation.state if target_conversation else None,
            )

        LOGGER.info(
            f"Disambiguation {conversation.id} resolved to conversation {target_conversation.id}; "
            f"replaying original reply"
        )
        return self.machine.apply(target_conversation, replay_text)


__all__ = [
    "DisambiguationManager",
    "OUTCOME_PROMPTED",
    "OUTCOME_TARGET_CLOSED",
]
