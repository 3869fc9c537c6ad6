"""Test disambiguation prompts and their resolution."""
from __future__ import annotations

from datetime import timedelta

import pytest

from core.models import ActionTaken, ConversationKind, ConversationState
from core.types import DisambiguationMetadata, parse_conversation_metadata
from core.utils import ensure_aware
from services.disambiguation import OUTCOME_PROMPTED, OUTCOME_TARGET_CLOSED, DisambiguationManager

from conftest import OWNER_PHONE

S = ConversationState


@pytest.fixture
def manager(machine) -> DisambiguationManager:
    return DisambiguationManager(machine)


@pytest.fixture
def two_renewals(make_listing, make_conversation):
    ocean = make_listing(location="Ocean Pkwy", bedrooms=3)
    bedford = make_listing(location="Bedford Ave", bedrooms=0)
    older = make_conversation(ocean)
    newer = make_conversation(bedford)
    return [newer, older]


class TestPrompt:
    def test_creates_disambiguation_conversation(self, manager, outbox, two_renewals, now):
        result = manager.prompt(OWNER_PHONE, "YES", two_renewals)

        assert result.outcome == OUTCOME_PROMPTED
        conversation = manager.store.get(result.conversation_id)
        assert conversation.state == S.AWAITING_DISAMBIGUATION.value
        assert conversation.conversation_type == ConversationKind.DISAMBIGUATION.value
        assert conversation.listing_id is None
        assert ensure_aware(conversation.expires_at) == now + timedelta(hours=24)

        metadata = parse_conversation_metadata(conversation.conversation_metadata)
        assert isinstance(metadata, DisambiguationMetadata)
        assert metadata.original_reply == "YES"
        assert [c.conversation_id for c in metadata.candidates] == [c.id for c in two_renewals]
        assert metadata.candidates[0].label == "Studio on Bedford Ave (renewal)"
        assert metadata.candidates[1].label == "3BR on Ocean Pkwy (renewal)"

        assert "1. Studio on Bedford Ave (renewal)" in outbox.messages[0].body

    def test_candidates_are_capped(self, manager, make_listing, make_conversation):
        conversations = [make_conversation(make_listing()) for _ in range(7)]

        result = manager.prompt(OWNER_PHONE, "yes", list(reversed(conversations)))

        metadata = parse_conversation_metadata(manager.store.get(result.conversation_id).conversation_metadata)
        assert len(metadata.candidates) == 5


class TestResolve:
    def _prompted(self, manager, outbox, conversations, text="YES"):
        result = manager.prompt(OWNER_PHONE, text, conversations)
        outbox.messages.clear()
        return manager.store.get(result.conversation_id)

    def test_number_replays_original_reply(self, manager, outbox, two_renewals, now):
        disambiguation = self._prompted(manager, outbox, two_renewals, "YES")
        target = two_renewals[1]

        result = manager.resolve(disambiguation, "2")

        assert disambiguation.state == S.COMPLETED.value
        assert disambiguation.action_taken == ActionTaken.DISAMBIGUATED.value
        assert result.conversation_id == target.id
        assert target.state == S.COMPLETED.value
        assert target.action_taken == ActionTaken.EXTENDED.value
        assert target.reply_text == "YES"
        assert two_renewals[0].state == S.AWAITING_AVAILABILITY.value
        assert "Extended 14 days" in outbox.messages[0].body

    def test_out_of_range_number_reprompts(self, manager, outbox, two_renewals):
        disambiguation = self._prompted(manager, outbox, two_renewals)

        result = manager.resolve(disambiguation, "9")

        assert result.outcome == "reprompted"
        assert disambiguation.state == S.AWAITING_DISAMBIGUATION.value
        assert "number from 1 to 2" in outbox.messages[0].body

    def test_unrecognized_text_reprompts(self, manager, outbox, two_renewals):
        disambiguation = self._prompted(manager, outbox, two_renewals)

        manager.resolve(disambiguation, "yes")

        assert disambiguation.state == S.AWAITING_DISAMBIGUATION.value
        assert "number from 1 to 2" in outbox.messages[0].body

    def test_help_resends_menu(self, manager, outbox, two_renewals):
        disambiguation = self._prompted(manager, outbox, two_renewals)

        manager.resolve(disambiguation, "which?")

        assert "1. Studio on Bedford Ave (renewal)" in outbox.messages[0].body

    def test_deactivation_with_one_active_candidate_selects_it(
        self, manager, outbox, make_listing, make_conversation
    ):
        answered = make_conversation(make_listing(is_active=False), state=S.AWAITING_HADIROT_QUESTION)
        active_listing = make_listing(location="Kings Hwy")
        renewal = make_conversation(active_listing)
        disambiguation = self._prompted(manager, outbox, [renewal, answered], "hmm")

        manager.resolve(disambiguation, "rented")

        assert disambiguation.action_taken == ActionTaken.DISAMBIGUATED.value
        assert active_listing.is_active is False
        assert renewal.state == S.AWAITING_HADIROT_QUESTION.value
        assert renewal.reply_text == "rented"
        assert answered.state == S.AWAITING_HADIROT_QUESTION.value

    def test_deactivation_with_several_active_candidates_reprompts(self, manager, outbox, two_renewals):
        disambiguation = self._prompted(manager, outbox, two_renewals)

        result = manager.resolve(disambiguation, "rented")

        assert result.outcome == "reprompted"
        assert all(c.state == S.AWAITING_AVAILABILITY.value for c in two_renewals)

    def test_closed_target_redirects_to_dashboard(self, manager, outbox, two_renewals, now):
        disambiguation = self._prompted(manager, outbox, two_renewals)
        target = two_renewals[0]
        target.state = S.COMPLETED.value
        target.action_taken = ActionTaken.EXTENDED.value
        listing = manager.store.get_listing(target.listing_id)
        expires_before = listing.expires_at

        result = manager.resolve(disambiguation, "1")

        assert result.outcome == OUTCOME_TARGET_CLOSED
        assert target.action_taken == ActionTaken.EXTENDED.value
        assert listing.expires_at == expires_before
        assert "already been closed" in outbox.messages[0].body

    def test_expired_target_redirects_to_dashboard(self, manager, outbox, two_renewals, now):
        disambiguation = self._prompted(manager, outbox, two_renewals)
        two_renewals[0].expires_at = now - timedelta(minutes=5)

        result = manager.resolve(disambiguation, "1")

        assert result.outcome == OUTCOME_TARGET_CLOSED
        assert two_renewals[0].state == S.AWAITING_AVAILABILITY.value

    def test_expired_disambiguation(self, manager, outbox, two_renewals, now):
        disambiguation = self._prompted(manager, outbox, two_renewals)
        disambiguation.expires_at = now - timedelta(seconds=1)

        result = manager.resolve(disambiguation, "1")

        assert result.outcome == "expired"
        assert disambiguation.state == S.EXPIRED_LINK.value
        assert two_renewals[0].state == S.AWAITING_AVAILABILITY.value
        assert "dashboard" in outbox.messages[0].body
