"""Custom exceptions for the listing renewal SMS engine."""
from __future__ import annotations


class RenewalEngineError(Exception):
    """Base exception for all application errors."""

    pass


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(RenewalEngineError):
    """Raised when required configuration is missing or invalid."""

    pass


class MissingCredentialsError(ConfigurationError):
    """Raised when required API credentials are not configured."""

    pass


# =============================================================================
# Store Errors
# =============================================================================


class StoreError(RenewalEngineError):
    """Base exception for conversation/listing store failures."""

    pass


class ListingNotFoundError(StoreError):
    """Raised when a conversation references a listing that no longer exists."""

    pass


# =============================================================================
# Outreach Errors
# =============================================================================


class OutreachError(RenewalEngineError):
    """Base exception for outbound messaging errors."""

    pass


class InvalidPhoneNumberError(OutreachError):
    """Raised when a phone number is invalid or cannot be normalized."""

    pass


# =============================================================================
# Conversation Errors
# =============================================================================


class MalformedInboundError(RenewalEngineError):
    """Raised when an inbound webhook is missing its sender or body."""

    pass


class ConversationStateError(RenewalEngineError):
    """Raised when a conversation is handed to a component that cannot advance it."""

    pass


class LockAcquisitionError(RenewalEngineError):
    """Raised when the per-phone lock cannot be acquired in time."""

    pass


__all__ = [
    # Base
    "RenewalEngineError",
    # Configuration
    "ConfigurationError",
    "MissingCredentialsError",
    # Store
    "StoreError",
    "ListingNotFoundError",
    # Outreach
    "OutreachError",
    "InvalidPhoneNumberError",
    # Conversation
    "MalformedInboundError",
    "ConversationStateError",
    "LockAcquisitionError",
]
