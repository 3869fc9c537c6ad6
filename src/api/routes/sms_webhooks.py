"""Twilio SMS webhooks: inbound replies and delivery status callbacks."""
from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from api.deps import get_sms_engine
from core.logging_config import get_logger
from services.engine import RenewalSmsEngine
from services.webhook_security import is_valid_twilio_request

router = APIRouter()
LOGGER = get_logger(__name__)

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def _twiml_ack() -> Response:
    return Response(content=EMPTY_TWIML, media_type="text/xml")


async def _form_params(request: Request) -> Dict[str, str]:
    form = await request.form()
    return {key: str(value) for key, value in form.items()}


@router.post("/inbound")
async def inbound_sms(
    request: Request,
    engine: RenewalSmsEngine = Depends(get_sms_engine),
) -> Response:
    """
    Handle an inbound SMS from Twilio.

    Always answers with an empty TwiML document and HTTP 200; replies are
    sent through the REST API once processing has committed.
    """
    try:
        params = await _form_params(request)
    except Exception:
        LOGGER.exception("Could not parse inbound webhook body")
        return _twiml_ack()

    if not is_valid_twilio_request(request, params):
        LOGGER.error(f"Dropping inbound webhook with invalid signature (SID: {params.get('MessageSid')})")
        return _twiml_ack()

    result = await run_in_threadpool(
        engine.handle_inbound,
        params.get("From"),
        params.get("Body"),
        params.get("MessageSid"),
    )
    LOGGER.debug(f"Inbound webhook result: {result.as_dict()}")
    return _twiml_ack()


@router.post("/status")
async def sms_status_callback(
    request: Request,
    engine: RenewalSmsEngine = Depends(get_sms_engine),
) -> Dict[str, object]:
    """
    Handle Twilio delivery status callbacks.

    Status progression: queued -> sending -> sent -> delivered | undelivered | failed
    """
    params = await _form_params(request)

    if not is_valid_twilio_request(request, params):
        LOGGER.error("Dropping status callback with invalid signature")
        return {"status": "ok", "updated": False}

    message_sid = params.get("MessageSid")
    status = params.get("MessageStatus")
    error_code = params.get("ErrorCode")
    error_message = params.get("ErrorMessage")
    if error_code:
        error_message = f"Error {error_code}: {error_message or status}"

    LOGGER.info(f"Twilio callback: SID={message_sid}, Status={status}, ErrorCode={error_code}")

    updated = await run_in_threadpool(
        engine.handle_status_callback, message_sid, status, error_message
    )
    return {"status": "ok", "updated": updated}
