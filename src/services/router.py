"""Conversation routing.

Decides which open conversation an inbound reply belongs to:

- no routable conversation: the unsolicited flow
- an open disambiguation: the disambiguation manager
- one conversation: the state machine
- several: an auto-resolution cascade, falling back to a disambiguation prompt

The cascade is total: every reply ends up resolved to one conversation,
acknowledged, or answered with exactly one disambiguation prompt.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from core.logging_config import get_logger
from core.models import (
    YES_NO_STATES,
    ConversationState,
    RenewalConversation,
)
from core.types import ProcessingResult
from services.disambiguation import DisambiguationManager
from services.intent_classifier import (
    has_acknowledgment_keyword,
    has_deactivation_keyword,
    is_yes_no,
    parse_selection,
)
from services.state_machine import StateMachine
from services.unsolicited import UnsolicitedFlow

LOGGER = get_logger(__name__)

# Route kinds
ROUTE_UNSOLICITED = "unsolicited"
ROUTE_DISAMBIGUATION = "disambiguation"
ROUTE_DIRECT = "direct"
ROUTE_RESOLVED = "resolved"
ROUTE_ACKNOWLEDGED = "acknowledged"
ROUTE_PROMPT = "prompt"


@dataclass(frozen=True, slots=True)
class Route:
    """Where a reply goes. ``rule`` names the cascade step that decided it."""

    kind: str
    conversation: Optional[RenewalConversation] = None
    rule: Optional[str] = None


def _only(conversations: List[RenewalConversation]) -> Optional[RenewalConversation]:
    return conversations[0] if len(conversations) == 1 else None


class ConversationRouter:
    """
    Picks the target for a reply and dispatches it.

    Usage:
        router = ConversationRouter(machine)
        result = router.dispatch(phone, text, store.routable_for_phone(phone))
    """

    def __init__(self, machine: StateMachine):
        self.machine = machine
        self.store = machine.store
        self.disambiguation = DisambiguationManager(machine)
        self.unsolicited = UnsolicitedFlow(machine)

    def _listing_is_active(self, conversation: RenewalConversation) -> bool:
        listing = self.store.get_listing(conversation.listing_id)
        return bool(listing is not None and listing.is_active)

    def resolve(self, text: str, conversations: List[RenewalConversation]) -> Route:
        """
        Choose a route for ``text`` given the sender's routable conversations.

        Args:
            text: Raw reply body.
            conversations: Non-terminal, non-pending conversations, newest first.
        """
        if not conversations:
            return Route(ROUTE_UNSOLICITED)

        open_disambiguations = [
            c for c in conversations if c.state == ConversationState.AWAITING_DISAMBIGUATION.value
        ]
        if open_disambiguations:
            if len(open_disambiguations) > 1:
                LOGGER.warning(
                    f"{len(open_disambiguations)} open disambiguations for "
                    f"{open_disambiguations[0].phone_number}; using the newest"
                )
            return Route(ROUTE_DISAMBIGUATION, open_disambiguations[0])

        if len(conversations) == 1:
            return Route(ROUTE_DIRECT, conversations[0])

        # (a) digits answer the single open selection menu
        if parse_selection(text) is not None:
            selecting = _only([
                c for c in conversations
                if c.state == ConversationState.AWAITING_LISTING_SELECTION.value
            ])
            if selecting:
                return Route(ROUTE_RESOLVED, selecting, "selection")

        # (b) acknowledgments close the newest conversation silently
        if has_acknowledgment_keyword(text):
            return Route(ROUTE_ACKNOWLEDGED, conversations[0], "acknowledgment")

        # (c) deactivation applies to the only conversation whose listing is still active
        if has_deactivation_keyword(text):
            active = _only([c for c in conversations if self._listing_is_active(c)])
            if active:
                return Route(ROUTE_RESOLVED, active, "deactivation")

        # (d) yes/no answers the only yes/no question
        if is_yes_no(text):
            asking = _only([c for c in conversations if c.state_enum in YES_NO_STATES])
            if asking:
                return Route(ROUTE_RESOLVED, asking, "yes_no")

        # (e) callbacks are lowest priority
        non_callback = _only([
            c for c in conversations if c.state != ConversationState.CALLBACK_SENT.value
        ])
        if non_callback:
            return Route(ROUTE_RESOLVED, non_callback, "non_callback")

        # (f)
        return Route(ROUTE_PROMPT, rule="disambiguate")

    def dispatch(
        self,
        phone: str,
        text: str,
        conversations: List[RenewalConversation],
    ) -> ProcessingResult:
        """Route a reply and run it through the chosen handler."""
        route = self.resolve(text, conversations)
        LOGGER.info(
            f"Routing reply from {phone}: {route.kind}"
            + (f" ({route.rule})" if route.rule else "")
            + (f" -> conversation {route.conversation.id}" if route.conversation else "")
        )

        if route.kind == ROUTE_UNSOLICITED:
            return self.unsolicited.handle(phone, text)
        if route.kind == ROUTE_DISAMBIGUATION:
            return self.disambiguation.resolve(route.conversation, text)
        if route.kind == ROUTE_ACKNOWLEDGED:
            return self.machine.acknowledge(route.conversation, text)
        if route.kind == ROUTE_PROMPT:
            return self.disambiguation.prompt(phone, text, conversations)
        return self.machine.apply(route.conversation, text)


__all__ = [
    "Route",
    "ConversationRouter",
    "ROUTE_UNSOLICITED",
    "ROUTE_DISAMBIGUATION",
    "ROUTE_DIRECT",
    "ROUTE_RESOLVED",
    "ROUTE_ACKNOWLEDGED",
    "ROUTE_PROMPT",
]
