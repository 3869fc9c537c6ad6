"""Conversation services for the listing renewal SMS engine.

This package provides:
- Intent classification of owner replies
- Conversation storage and the renewal state machine
- Routing of inbound replies to the right conversation
- Disambiguation and unsolicited-message flows
- Per-phone locking, message logging and admin alerts
- The expired-conversation sweep
"""
from __future__ import annotations

from .intent_classifier import (
    Classification,
    Confidence,
    Intent,
    classify_intent,
)
from .conversation_store import ConversationStore
from .state_machine import StateMachine
from .router import ConversationRouter, Route
from .locking import PhoneLockService, get_phone_lock_service, reset_phone_lock_service
from .message_log import MessageLogService
from .notification import AdminAlertService, SmsNotifier, deliver_outbox
from .cleanup import run_sweep, sweep_expired_conversations
from .engine import RenewalSmsEngine, get_engine, set_engine

__all__ = [
    # Classification
    "Classification",
    "Confidence",
    "Intent",
    "classify_intent",
    # Conversations
    "ConversationStore",
    "StateMachine",
    "ConversationRouter",
    "Route",
    # Infrastructure
    "PhoneLockService",
    "get_phone_lock_service",
    "reset_phone_lock_service",
    "MessageLogService",
    "AdminAlertService",
    "SmsNotifier",
    "deliver_outbox",
    # Sweep
    "run_sweep",
    "sweep_expired_conversations",
    # Engine
    "RenewalSmsEngine",
    "get_engine",
    "set_engine",
]
