"""Test phone normalization."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Add src to path
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from core.exceptions import InvalidPhoneNumberError
from outreach.phone import mask_phone, normalize_phone_e164, require_phone_e164


def test_normalize_phone_valid():
    """Test valid phone number normalization."""
    assert normalize_phone_e164("718-555-0100") == "+17185550100"
    assert normalize_phone_e164("(718) 555-0100") == "+17185550100"
    assert normalize_phone_e164("718.555.0100") == "+17185550100"
    assert normalize_phone_e164("+1 718 555 0100") == "+17185550100"
    assert normalize_phone_e164("17185550100") == "+17185550100"


def test_normalize_phone_already_e164():
    """Twilio sends From already in E.164; it must come back unchanged."""
    assert normalize_phone_e164("+17185550100") == "+17185550100"


def test_normalize_phone_invalid():
    """Test invalid phone number handling."""
    assert normalize_phone_e164("123") is None
    assert normalize_phone_e164("invalid") is None
    assert normalize_phone_e164("") is None
    assert normalize_phone_e164(None) is None


def test_require_phone_raises_on_garbage():
    with pytest.raises(InvalidPhoneNumberError):
        require_phone_e164("not a phone")


def test_require_phone_returns_e164():
    assert require_phone_e164("718 555 0100") == "+17185550100"


def test_mask_phone():
    assert mask_phone("+17185550100") == "***0100"
    assert mask_phone(None) == ""
