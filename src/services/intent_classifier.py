"""Keyword-based intent classification for owner SMS replies.

Classification depends only on the message text and the state of the
conversation it is being applied to, so every rule can be unit-tested
against literal strings.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Optional, Union

from core.models import ConversationState

AFFIRMATIVE_TOKENS = frozenset({
    "yes", "y", "yeah", "yep", "yup", "ya", "yea", "sure", "ok", "okay",
    "still available", "available",
})

NEGATIVE_TOKENS = frozenset({"no", "n", "nope", "nah"})

# Matched as substrings
DEACTIVATION_KEYWORDS = (
    "rented",
    "sold",
    "taken",
    "leased",
    "deactivate",
    "remove",
    "no longer available",
    "not available",
    "off the market",
    "under contract",
    "found a tenant",
    "found a buyer",
)

# Matched on word boundaries
ACKNOWLEDGMENT_KEYWORDS = (
    "thanks",
    "thank you",
    "thx",
    "ty",
    "tnx",
    "appreciate",
    "got it",
    "great",
    "awesome",
    "perfect",
    "will do",
    "sounds good",
    "👍",
    "🙏",
)

HELP_KEYWORDS = ("help", "what", "which", "list", "show", "other", "info")


def _word_pattern(keywords: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)")


_ACK_RE = _word_pattern(ACKNOWLEDGMENT_KEYWORDS)
_HELP_RE = _word_pattern(HELP_KEYWORDS)
_DIGITS_RE = re.compile(r"^[0-9]+$")


class Intent(str, enum.Enum):
    AFFIRMATIVE = "affirmative"
    NEGATIVE = "negative"
    DEACTIVATION = "deactivation"
    HELP = "help"
    SELECTION = "selection"
    ACKNOWLEDGMENT = "acknowledgment"
    UNKNOWN = "unknown"


class Confidence(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True, slots=True)
class Classification:
    intent: Intent
    confidence: Confidence
    selection: Optional[int] = None  # 1-based number for selection intents


# =============================================================================
# Text predicates
# =============================================================================


def normalize_text(text: Optional[str]) -> str:
    """Trim, lowercase and strip trailing '.'/'!' characters."""
    if not text:
        return ""
    return text.strip().lower().rstrip(".!").strip()


def parse_selection(text: Optional[str]) -> Optional[int]:
    """Return the number for a digits-only reply, else None."""
    normalized = normalize_text(text)
    if _DIGITS_RE.match(normalized):
        return int(normalized)
    return None


def is_affirmative(text: Optional[str]) -> bool:
    return normalize_text(text) in AFFIRMATIVE_TOKENS


def is_negative(text: Optional[str]) -> bool:
    return normalize_text(text) in NEGATIVE_TOKENS


def is_yes_no(text: Optional[str]) -> bool:
    return is_affirmative(text) or is_negative(text)


def has_deactivation_keyword(text: Optional[str]) -> bool:
    normalized = normalize_text(text)
    return any(keyword in normalized for keyword in DEACTIVATION_KEYWORDS)


def has_acknowledgment_keyword(text: Optional[str]) -> bool:
    return bool(_ACK_RE.search(normalize_text(text)))


def is_help_request(text: Optional[str]) -> bool:
    normalized = normalize_text(text)
    return "?" in normalized or bool(_HELP_RE.search(normalized))


# =============================================================================
# Classification
# =============================================================================


def classify_intent(
    text: Optional[str],
    state: Union[ConversationState, str, None] = None,
) -> Classification:
    """
    Map a raw reply and the current conversation state to an intent.

    Args:
        text: Raw message body.
        state: State of the conversation the reply is applied to, or None
            for a message with no conversation.

    Returns:
        Classification with intent and confidence tier.
    """
    if state is not None and not isinstance(state, ConversationState):
        state = ConversationState(state)

    number = parse_selection(text)
    if number is not None:
        return Classification(Intent.SELECTION, Confidence.HIGH, number)

    if state in (ConversationState.AWAITING_AVAILABILITY, ConversationState.AWAITING_REPORT_RESPONSE):
        if is_affirmative(text):
            return Classification(Intent.AFFIRMATIVE, Confidence.HIGH)
        if is_negative(text) or has_deactivation_keyword(text):
            return Classification(Intent.NEGATIVE, Confidence.HIGH)
        if is_help_request(text):
            return Classification(Intent.HELP, Confidence.MEDIUM)
        return Classification(Intent.UNKNOWN, Confidence.LOW)

    if state == ConversationState.AWAITING_HADIROT_QUESTION:
        if is_affirmative(text):
            return Classification(Intent.AFFIRMATIVE, Confidence.HIGH)
        if is_negative(text):
            return Classification(Intent.NEGATIVE, Confidence.HIGH)
        return Classification(Intent.UNKNOWN, Confidence.LOW)

    if state == ConversationState.AWAITING_LISTING_SELECTION:
        return Classification(Intent.UNKNOWN, Confidence.LOW)

    if state == ConversationState.CALLBACK_SENT:
        if has_deactivation_keyword(text):
            return Classification(Intent.DEACTIVATION, Confidence.HIGH)
        if is_negative(text):
            return Classification(Intent.DEACTIVATION, Confidence.MEDIUM)
        if has_acknowledgment_keyword(text):
            return Classification(Intent.ACKNOWLEDGMENT, Confidence.HIGH)
        # Unrecognized replies after a callback are treated as a polite close
        return Classification(Intent.ACKNOWLEDGMENT, Confidence.LOW)

    if state is None or state == ConversationState.AWAITING_DISAMBIGUATION:
        if has_deactivation_keyword(text):
            return Classification(Intent.DEACTIVATION, Confidence.HIGH)
        if state is None and has_acknowledgment_keyword(text):
            return Classification(Intent.ACKNOWLEDGMENT, Confidence.MEDIUM)
        if is_help_request(text):
            return Classification(Intent.HELP, Confidence.MEDIUM)
        return Classification(Intent.UNKNOWN, Confidence.LOW)

    return Classification(Intent.UNKNOWN, Confidence.LOW)


__all__ = [
    "Intent",
    "Confidence",
    "Classification",
    "AFFIRMATIVE_TOKENS",
    "NEGATIVE_TOKENS",
    "DEACTIVATION_KEYWORDS",
    "ACKNOWLEDGMENT_KEYWORDS",
    "HELP_KEYWORDS",
    "normalize_text",
    "parse_selection",
    "is_affirmative",
    "is_negative",
    "is_yes_no",
    "has_deactivation_keyword",
    "has_acknowledgment_keyword",
    "is_help_request",
    "classify_intent",
]
