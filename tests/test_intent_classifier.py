"""Test reply intent classification."""
from __future__ import annotations

import pytest

from core.models import ConversationState
from services.intent_classifier import (
    Confidence,
    Intent,
    classify_intent,
    has_acknowledgment_keyword,
    has_deactivation_keyword,
    is_help_request,
    normalize_text,
    parse_selection,
)

S = ConversationState


class TestNormalization:
    def test_trims_lowercases_and_strips_trailing_punctuation(self):
        assert normalize_text("  YES!! ") == "yes"
        assert normalize_text("Rented.") == "rented"
        assert normalize_text(None) == ""

    def test_question_mark_is_kept(self):
        assert normalize_text("which one?") == "which one?"

    def test_parse_selection(self):
        assert parse_selection(" 2 ") == 2
        assert parse_selection("12") == 12
        assert parse_selection("2nd") is None
        assert parse_selection("") is None


class TestKeywordMatching:
    def test_deactivation_keywords_match_as_substrings(self):
        assert has_deactivation_keyword("It got RENTED yesterday")
        assert has_deactivation_keyword("we found a tenant")
        assert has_deactivation_keyword("please deactivate")
        assert not has_deactivation_keyword("still here")

    def test_acknowledgment_keywords_match_whole_words(self):
        assert has_acknowledgment_keyword("Thanks!")
        assert has_acknowledgment_keyword("ok got it")
        assert has_acknowledgment_keyword("👍")
        assert not has_acknowledgment_keyword("style")
        assert not has_acknowledgment_keyword("greatest hits")

    def test_help_request(self):
        assert is_help_request("which one?")
        assert is_help_request("?")
        assert is_help_request("show me the list")
        assert not is_help_request("whatever")


class TestDigits:
    @pytest.mark.parametrize("state", [None, S.AWAITING_AVAILABILITY, S.AWAITING_LISTING_SELECTION, S.CALLBACK_SENT])
    def test_digits_are_selection_in_every_state(self, state):
        result = classify_intent("3", state)
        assert result.intent == Intent.SELECTION
        assert result.confidence == Confidence.HIGH
        assert result.selection == 3


class TestAwaitingAvailability:
    @pytest.mark.parametrize("text", ["YES", "y", "Yep", "sure", "ok", "Still available", "available."])
    def test_affirmative(self, text):
        result = classify_intent(text, S.AWAITING_AVAILABILITY)
        assert result.intent == Intent.AFFIRMATIVE
        assert result.confidence == Confidence.HIGH

    @pytest.mark.parametrize("text", ["no", "N", "nope", "nah", "rented", "it was sold", "not available"])
    def test_negative(self, text):
        result = classify_intent(text, S.AWAITING_AVAILABILITY)
        assert result.intent == Intent.NEGATIVE
        assert result.confidence == Confidence.HIGH

    def test_help(self):
        result = classify_intent("which listing?", S.AWAITING_AVAILABILITY)
        assert result.intent == Intent.HELP
        assert result.confidence == Confidence.MEDIUM

    def test_unknown(self):
        result = classify_intent("call me tomorrow", S.AWAITING_AVAILABILITY)
        assert result.intent == Intent.UNKNOWN
        assert result.confidence == Confidence.LOW

    def test_report_response_uses_same_rules(self):
        assert classify_intent("yes", S.AWAITING_REPORT_RESPONSE).intent == Intent.AFFIRMATIVE
        assert classify_intent("leased", S.AWAITING_REPORT_RESPONSE).intent == Intent.NEGATIVE

    def test_state_may_be_given_as_string(self):
        assert classify_intent("yes", "awaiting_availability").intent == Intent.AFFIRMATIVE


class TestAttributionQuestion:
    def test_exact_tokens_only(self):
        assert classify_intent("Yes", S.AWAITING_HADIROT_QUESTION).intent == Intent.AFFIRMATIVE
        assert classify_intent("no", S.AWAITING_HADIROT_QUESTION).intent == Intent.NEGATIVE

    def test_deactivation_words_are_not_answers(self):
        result = classify_intent("rented", S.AWAITING_HADIROT_QUESTION)
        assert result.intent == Intent.UNKNOWN
        assert result.confidence == Confidence.LOW

    def test_help_is_not_recognized(self):
        assert classify_intent("what?", S.AWAITING_HADIROT_QUESTION).intent == Intent.UNKNOWN


class TestListingSelection:
    def test_non_digits_are_unknown(self):
        result = classify_intent("the first one", S.AWAITING_LISTING_SELECTION)
        assert result.intent == Intent.UNKNOWN


class TestCallbackSent:
    def test_deactivation_keyword(self):
        result = classify_intent("Already rented, thanks", S.CALLBACK_SENT)
        assert result.intent == Intent.DEACTIVATION
        assert result.confidence == Confidence.HIGH

    def test_bare_no_is_medium_deactivation(self):
        result = classify_intent("no", S.CALLBACK_SENT)
        assert result.intent == Intent.DEACTIVATION
        assert result.confidence == Confidence.MEDIUM

    def test_acknowledgment(self):
        result = classify_intent("thank you!", S.CALLBACK_SENT)
        assert result.intent == Intent.ACKNOWLEDGMENT
        assert result.confidence == Confidence.HIGH

    def test_anything_else_is_low_acknowledgment(self):
        result = classify_intent("see you then", S.CALLBACK_SENT)
        assert result.intent == Intent.ACKNOWLEDGMENT
        assert result.confidence == Confidence.LOW


class TestNoConversation:
    def test_deactivation(self):
        result = classify_intent("Rented", None)
        assert result.intent == Intent.DEACTIVATION
        assert result.confidence == Confidence.HIGH

    def test_acknowledgment(self):
        result = classify_intent("thanks", None)
        assert result.intent == Intent.ACKNOWLEDGMENT
        assert result.confidence == Confidence.MEDIUM

    def test_help(self):
        assert classify_intent("help", None).intent == Intent.HELP

    def test_unknown(self):
        result = classify_intent("hello", None)
        assert result.intent == Intent.UNKNOWN
        assert result.confidence == Confidence.LOW

    def test_yes_without_state_is_unknown(self):
        assert classify_intent("yes", None).intent == Intent.UNKNOWN


class TestOtherStates:
    def test_disambiguation_state(self):
        assert classify_intent("rented", S.AWAITING_DISAMBIGUATION).intent == Intent.DEACTIVATION
        assert classify_intent("?", S.AWAITING_DISAMBIGUATION).intent == Intent.HELP
        assert classify_intent("thanks", S.AWAITING_DISAMBIGUATION).intent == Intent.UNKNOWN

    @pytest.mark.parametrize("state", [S.PENDING, S.COMPLETED, S.EXPIRED_LINK, S.TIMEOUT])
    def test_pending_and_terminal_states_are_unknown(self, state):
        assert classify_intent("yes", state).intent == Intent.UNKNOWN


def test_classification_is_pure():
    first = classify_intent("Rented!", S.AWAITING_AVAILABILITY)
    second = classify_intent("Rented!", S.AWAITING_AVAILABILITY)
    assert first == second
