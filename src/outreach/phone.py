"""Phone number utilities for matching SMS senders to conversations and listings."""
from __future__ import annotations

import re
from typing import Optional

import phonenumbers
from phonenumbers import NumberParseException

from core.exceptions import InvalidPhoneNumberError
from core.logging_config import get_logger

LOGGER = get_logger(__name__)


def normalize_phone_e164(value: Optional[str], default_region: str = "US") -> Optional[str]:
    """
    Normalize a phone number to E.164 format.

    Args:
        value: Raw phone number string.
        default_region: Default region for parsing (ISO 3166-1 alpha-2).

    Returns:
        E.164 formatted phone number if valid, otherwise None.
    """
    if not value:
        return None

    cleaned = re.sub(r"[^\d+]", "", value.strip())
    if not cleaned:
        return None

    try:
        parsed = phonenumbers.parse(value, default_region)
        if phonenumbers.is_valid_number(parsed):
            return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
    except NumberParseException:
        pass

    # Fall back to NANP digit rules for numbers libphonenumber rejects
    # (e.g. 555 test exchanges used by carriers and in staging).
    digits = re.sub(r"\D", "", cleaned)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"

    return None


def require_phone_e164(value: Optional[str], default_region: str = "US") -> str:
    """
    Normalize a phone number or raise.

    Raises:
        InvalidPhoneNumberError: If the value cannot be normalized.
    """
    e164 = normalize_phone_e164(value, default_region)
    if not e164:
        raise InvalidPhoneNumberError(f"Cannot normalize phone number: {value!r}")
    return e164


def mask_phone(phone: Optional[str]) -> str:
    """Mask all but the last four digits for log output."""
    if not phone:
        return ""
    return f"***{phone[-4:]}" if len(phone) > 4 else phone


__all__ = ["normalize_phone_e164", "require_phone_e164", "mask_phone"]
