"""Outbound SMS transport and phone helpers."""
from .phone import normalize_phone_e164, require_phone_e164, mask_phone
from .twilio_client import TwilioClient, SMSResult, get_twilio_client, reset_twilio_client

__all__ = [
    "normalize_phone_e164",
    "require_phone_e164",
    "mask_phone",
    "TwilioClient",
    "SMSResult",
    "get_twilio_client",
    "reset_twilio_client",
]
