"""Shared dataclasses and typed conversation metadata."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from core.logging_config import get_logger

LOGGER = get_logger(__name__)


# =============================================================================
# Conversation metadata variants
# =============================================================================


class SelectionCandidate(BaseModel):
    """A listing offered in a numbered selection menu."""

    listing_id: int
    label: str


class DisambiguationCandidate(BaseModel):
    """A conversation offered in a "which listing?" menu."""

    conversation_id: int
    listing_id: Optional[int] = None
    label: str


class SelectionMetadata(BaseModel):
    """Payload of an awaiting_listing_selection conversation."""

    kind: Literal["selection"] = "selection"
    candidates: List[SelectionCandidate] = Field(default_factory=list)


class DisambiguationMetadata(BaseModel):
    """Payload of an awaiting_disambiguation conversation."""

    kind: Literal["disambiguation"] = "disambiguation"
    original_reply: str
    candidates: List[DisambiguationCandidate] = Field(default_factory=list)


class ReportMetadata(BaseModel):
    """Payload of a report_rented conversation."""

    kind: Literal["report"] = "report"
    reporter_id: Optional[str] = None
    reported_at: Optional[str] = None


ConversationMetadata = Union[SelectionMetadata, DisambiguationMetadata, ReportMetadata]

_METADATA_BY_KIND = {
    "selection": SelectionMetadata,
    "disambiguation": DisambiguationMetadata,
    "report": ReportMetadata,
}


def parse_conversation_metadata(raw: Optional[Dict[str, Any]]) -> Optional[ConversationMetadata]:
    """
    Parse a stored metadata blob into its typed variant.

    The ``kind`` key selects the variant. Unknown kinds and payloads that fail
    validation yield None so callers can treat them as "no usable metadata".
    """
    if not raw:
        return None

    model = _METADATA_BY_KIND.get(raw.get("kind", ""))
    if model is None:
        LOGGER.warning(f"Unknown conversation metadata kind: {raw.get('kind')!r}")
        return None

    try:
        return model.model_validate(raw)
    except ValidationError as e:
        LOGGER.warning(f"Invalid {raw.get('kind')} metadata: {e}")
        return None


# =============================================================================
# Engine values
# =============================================================================


@dataclass(slots=True)
class OutboundMessage:
    """An SMS queued during a transition and delivered after commit."""

    to: str
    body: str
    source: str
    conversation_id: Optional[int] = None
    listing_id: Optional[int] = None


@dataclass(slots=True)
class AdminAlert:
    """An admin notification queued during processing."""

    subject: str
    details: str
    category: str = "errors"


@dataclass(slots=True)
class Outbox:
    """Side effects collected inside a transaction and released once it commits."""

    messages: List[OutboundMessage] = field(default_factory=list)
    alerts: List[AdminAlert] = field(default_factory=list)

    def sms(
        self,
        to: str,
        body: str,
        source: str,
        conversation_id: Optional[int] = None,
        listing_id: Optional[int] = None,
    ) -> None:
        self.messages.append(OutboundMessage(to, body, source, conversation_id, listing_id))

    def alert(self, subject: str, details: str, category: str = "errors") -> None:
        self.alerts.append(AdminAlert(subject, details, category))


@dataclass(slots=True)
class ProcessingResult:
    """Summary of one inbound message, returned by the engine for logging and tests."""

    outcome: str
    conversation_id: Optional[int] = None
    state: Optional[str] = None
    action: Optional[str] = None
    replies: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            "conversation_id": self.conversation_id,
            "state": self.state,
            "action": self.action,
            "replies": list(self.replies),
        }


__all__ = [
    "SelectionCandidate",
    "DisambiguationCandidate",
    "SelectionMetadata",
    "DisambiguationMetadata",
    "ReportMetadata",
    "ConversationMetadata",
    "parse_conversation_metadata",
    "OutboundMessage",
    "AdminAlert",
    "Outbox",
    "ProcessingResult",
]
