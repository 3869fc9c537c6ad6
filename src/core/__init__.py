"""Core module exports."""
from __future__ import annotations

from core.config import Settings, get_settings, reload_settings
from core.db import SessionLocal, get_session_factory
from core.exceptions import (
    # Base
    RenewalEngineError,
    # Configuration
    ConfigurationError,
    MissingCredentialsError,
    # Store
    StoreError,
    ListingNotFoundError,
    # Outreach
    OutreachError,
    InvalidPhoneNumberError,
    # Conversation
    MalformedInboundError,
    ConversationStateError,
    LockAcquisitionError,
)
from core.logging_config import (
    setup_logging,
    get_logger,
    get_context_logger,
    log_external_call,
    JSONFormatter,
    ContextLogger,
)
from core.models import (
    Base,
    Listing,
    RenewalConversation,
    SmsMessage,
    SmsAdminConfig,
    PhoneLock,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "reload_settings",
    # Database
    "get_session_factory",
    "SessionLocal",
    "Base",
    # Models
    "Listing",
    "RenewalConversation",
    "SmsMessage",
    "SmsAdminConfig",
    "PhoneLock",
    # Exceptions - Base
    "RenewalEngineError",
    # Exceptions - Config
    "ConfigurationError",
    "MissingCredentialsError",
    # Exceptions - Store
    "StoreError",
    "ListingNotFoundError",
    # Exceptions - Outreach
    "OutreachError",
    "InvalidPhoneNumberError",
    # Exceptions - Conversation
    "MalformedInboundError",
    "ConversationStateError",
    "LockAcquisitionError",
    # Logging
    "setup_logging",
    "get_logger",
    "get_context_logger",
    "log_external_call",
    "JSONFormatter",
    "ContextLogger",
]
