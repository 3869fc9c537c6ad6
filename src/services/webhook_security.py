"""Twilio webhook signature verification."""
from __future__ import annotations

from typing import Dict, Optional

from fastapi import Request
from twilio.request_validator import RequestValidator

from core.config import Settings, get_settings
from core.logging_config import get_logger

LOGGER = get_logger(__name__)

SIGNATURE_HEADER = "X-Twilio-Signature"


def signature_validation_enabled(settings: Optional[Settings] = None) -> bool:
    """Signatures are checked only when live and an auth token is configured."""
    settings = settings or get_settings()
    return bool(
        settings.validate_twilio_signature
        and not settings.dry_run
        and settings.twilio_auth_token
    )


def public_url(request: Request) -> str:
    """
    The URL Twilio signed.

    Behind a proxy or tunnel the forwarded scheme and host are used instead
    of the ones the app server sees.
    """
    forwarded_proto = request.headers.get("X-Forwarded-Proto")
    forwarded_host = request.headers.get("X-Forwarded-Host")

    if forwarded_proto and forwarded_host:
        url = f"{forwarded_proto}://{forwarded_host}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"
        return url

    return str(request.url)


def is_valid_twilio_request(
    request: Request,
    params: Dict[str, str],
    settings: Optional[Settings] = None,
) -> bool:
    """
    Check the X-Twilio-Signature header of a form-encoded webhook.

    Args:
        request: The incoming request.
        params: Parsed form fields.
        settings: Settings override (tests).

    Returns:
        True if validation is disabled or the signature matches.
    """
    settings = settings or get_settings()
    if not signature_validation_enabled(settings):
        return True

    signature = request.headers.get(SIGNATURE_HEADER, "")
    if not signature:
        LOGGER.warning("No Twilio signature provided")
        return False

    url = public_url(request)
    is_valid = RequestValidator(settings.twilio_auth_token).validate(url, params, signature)

    if not is_valid:
        LOGGER.warning(f"Invalid Twilio signature for {url}")

    return is_valid


__all__ = [
    "SIGNATURE_HEADER",
    "signature_validation_enabled",
    "public_url",
    "is_valid_twilio_request",
]
