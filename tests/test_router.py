"""Test conversation routing and the auto-resolution cascade."""
from __future__ import annotations

import pytest

from core.models import ActionTaken, ConversationKind, ConversationState
from core.types import SelectionCandidate, SelectionMetadata
from services.router import (
    ROUTE_ACKNOWLEDGED,
    ROUTE_DIRECT,
    ROUTE_DISAMBIGUATION,
    ROUTE_PROMPT,
    ROUTE_RESOLVED,
    ROUTE_UNSOLICITED,
    ConversationRouter,
)

from conftest import OWNER_PHONE

S = ConversationState


@pytest.fixture
def router(machine) -> ConversationRouter:
    return ConversationRouter(machine)


def _newest_first(*conversations):
    return sorted(conversations, key=lambda c: (c.updated_at, c.id), reverse=True)


class TestResolve:
    def test_no_conversations_is_unsolicited(self, router):
        assert router.resolve("rented", []).kind == ROUTE_UNSOLICITED

    def test_single_conversation_is_direct(self, router, make_listing, make_conversation):
        conversation = make_conversation(make_listing())
        route = router.resolve("anything", [conversation])
        assert route.kind == ROUTE_DIRECT
        assert route.conversation is conversation

    def test_open_disambiguation_takes_priority(self, router, make_listing, make_conversation):
        renewal = make_conversation(make_listing())
        older = make_conversation(None, state=S.AWAITING_DISAMBIGUATION, kind=ConversationKind.DISAMBIGUATION)
        newer = make_conversation(None, state=S.AWAITING_DISAMBIGUATION, kind=ConversationKind.DISAMBIGUATION)

        route = router.resolve("1", _newest_first(renewal, older, newer))

        assert route.kind == ROUTE_DISAMBIGUATION
        assert route.conversation is newer

    def test_digits_pick_the_only_selection_menu(self, router, make_listing, make_conversation):
        renewal = make_conversation(make_listing())
        selecting = make_conversation(
            None,
            state=S.AWAITING_LISTING_SELECTION,
            conversation_metadata=SelectionMetadata(
                candidates=[SelectionCandidate(listing_id=1, label="a")]
            ).model_dump(),
        )

        route = router.resolve("1", _newest_first(renewal, selecting))

        assert route.kind == ROUTE_RESOLVED
        assert route.rule == "selection"
        assert route.conversation is selecting

    def test_acknowledgment_goes_to_newest(self, router, make_listing, make_conversation):
        first = make_conversation(make_listing())
        second = make_conversation(make_listing())
        third = make_conversation(make_listing(), state=S.CALLBACK_SENT, kind=ConversationKind.CALLBACK)

        route = router.resolve("thanks!", _newest_first(first, second, third))

        assert route.kind == ROUTE_ACKNOWLEDGED
        assert route.conversation is third

    def test_deactivation_picks_only_active_listing(self, router, make_listing, make_conversation):
        inactive = make_conversation(make_listing(is_active=False), state=S.AWAITING_HADIROT_QUESTION)
        active = make_conversation(make_listing())

        route = router.resolve("it's rented", _newest_first(inactive, active))

        assert route.kind == ROUTE_RESOLVED
        assert route.rule == "deactivation"
        assert route.conversation is active

    def test_yes_no_picks_only_yes_no_question(self, router, make_listing, make_conversation):
        callback = make_conversation(make_listing(), state=S.CALLBACK_SENT, kind=ConversationKind.CALLBACK)
        question = make_conversation(make_listing(is_active=False), state=S.AWAITING_HADIROT_QUESTION)

        route = router.resolve("no", _newest_first(callback, question))

        assert route.kind == ROUTE_RESOLVED
        assert route.conversation is question

    def test_single_non_callback_wins(self, router, make_listing, make_conversation):
        renewal = make_conversation(make_listing())
        callback = make_conversation(make_listing(), state=S.CALLBACK_SENT, kind=ConversationKind.CALLBACK)

        route = router.resolve("call me", _newest_first(renewal, callback))

        assert route.kind == ROUTE_RESOLVED
        assert route.rule == "non_callback"
        assert route.conversation is renewal

    def test_ambiguous_reply_prompts(self, router, make_listing, make_conversation):
        first = make_conversation(make_listing())
        second = make_conversation(make_listing())

        route = router.resolve("YES", _newest_first(first, second))

        assert route.kind == ROUTE_PROMPT
        assert route.conversation is None

    def test_resolution_is_deterministic(self, router, make_listing, make_conversation):
        conversations = _newest_first(
            make_conversation(make_listing()),
            make_conversation(make_listing()),
        )
        first = router.resolve("rented", conversations)
        second = router.resolve("rented", conversations)
        assert first == second


class TestDispatch:
    def test_acknowledgment_closes_newest_silently(self, router, outbox, make_listing, make_conversation):
        first = make_conversation(make_listing())
        second = make_conversation(make_listing())
        third = make_conversation(make_listing())

        router.dispatch(OWNER_PHONE, "thanks", _newest_first(first, second, third))

        assert third.state == S.COMPLETED.value
        assert third.action_taken == ActionTaken.ACKNOWLEDGED.value
        assert first.state == S.AWAITING_AVAILABILITY.value
        assert second.state == S.AWAITING_AVAILABILITY.value
        assert outbox.messages == []

    def test_ambiguous_reply_creates_disambiguation(self, router, outbox, make_listing, make_conversation):
        first = make_conversation(make_listing(location="Ocean Pkwy"))
        second = make_conversation(make_listing(location="Bedford Ave"))

        result = router.dispatch(OWNER_PHONE, "YES", _newest_first(first, second))

        assert result.outcome == "disambiguation_prompted"
        assert result.state == S.AWAITING_DISAMBIGUATION.value
        assert len(outbox.messages) == 1
        assert "1. 2BR on Bedford Ave (renewal)" in outbox.messages[0].body
        assert "2. 2BR on Ocean Pkwy (renewal)" in outbox.messages[0].body
