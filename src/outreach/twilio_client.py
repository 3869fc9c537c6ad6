"""Outbound SMS through the Twilio REST API.

``TwilioClient.send_sms`` never raises: credential problems, API errors and
an open circuit all come back as a failed ``SMSResult`` so that a transport
outage cannot undo a committed transition. With DRY_RUN on, messages are
logged and given a ``DRY...`` SID instead of being sent.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from core.config import Settings, get_settings
from core.exceptions import MissingCredentialsError
from core.logging_config import get_logger, log_external_call
from core.utils import CircuitBreaker, RateLimiter, generate_unique_key, truncate

LOGGER = get_logger(__name__)

# Longest pause before sending when the per-second budget is used up
MAX_THROTTLE_SECONDS = 5

_twilio_circuit = CircuitBreaker(name="twilio_api", failure_threshold=5, recovery_timeout=60)


def _build_rate_limiter(settings: Settings) -> RateLimiter:
    per_minute = max(1, int(settings.twilio_max_messages_per_second * 60))
    return RateLimiter(max_calls=per_minute, period_seconds=60)


_rate_limiter = _build_rate_limiter(get_settings())


@dataclass
class SMSResult:
    """Outcome of one send attempt."""
    success: bool
    sid: Optional[str] = None
    status: str = "unknown"
    error_code: Optional[int] = None
    error_message: Optional[str] = None
    dry_run: bool = False


class TwilioClient:
    """
    Sends SMS from the configured number or messaging service.

    Usage:
        client = get_twilio_client()
        result = client.send_sms(to="+17185550100", body="Hadirot Alert: ...")
    """

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        messaging_service_sid: Optional[str] = None,
        dry_run: Optional[bool] = None,
    ):
        settings = get_settings()
        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        self.from_number = from_number or settings.twilio_from_number
        self.messaging_service_sid = messaging_service_sid or settings.twilio_messaging_service_sid
        self.status_callback_url = settings.twilio_status_callback_url
        self.dry_run = settings.dry_run if dry_run is None else dry_run

        self._client: Optional[Client] = None
        self.circuit = _twilio_circuit
        self.rate_limiter = _rate_limiter

    def _get_client(self) -> Client:
        if self._client is None:
            if not self.account_sid or not self.auth_token:
                raise MissingCredentialsError("Twilio credentials not configured")
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def _message_params(self, to: str, body: str, status_callback: Optional[str]) -> Dict[str, Any]:
        params: Dict[str, Any] = {"to": to, "body": body}
        # A messaging service picks the sender itself
        if self.messaging_service_sid:
            params["messaging_service_sid"] = self.messaging_service_sid
        else:
            params["from_"] = self.from_number

        callback = status_callback or self.status_callback_url
        if callback:
            params["status_callback"] = callback
        return params

    def _throttle(self) -> None:
        if self.rate_limiter.can_proceed():
            return
        wait = min(self.rate_limiter.wait_time(), MAX_THROTTLE_SECONDS)
        LOGGER.warning(f"Twilio send rate reached, pausing {wait:.1f}s")
        time.sleep(wait)

    def send_sms(
        self,
        to: str,
        body: str,
        status_callback: Optional[str] = None,
    ) -> SMSResult:
        """
        Send one SMS.

        Args:
            to: E.164 recipient.
            body: Message text.
            status_callback: Overrides TWILIO_STATUS_CALLBACK_URL for this message.
        """
        if self.dry_run:
            LOGGER.info(f"[DRY RUN] SMS to {to}: {truncate(body, 80)}")
            return SMSResult(success=True, sid=f"DRY{generate_unique_key()[:29]}", status="dry_run", dry_run=True)

        if not self.circuit.can_execute():
            LOGGER.warning(f"Twilio circuit open, not sending to {to}")
            return SMSResult(success=False, status="circuit_open", error_message="Twilio temporarily unavailable")

        self._throttle()
        start = time.perf_counter()

        try:
            message = self._get_client().messages.create(**self._message_params(to, body, status_callback))
        except TwilioRestException as e:
            self.circuit.record_failure()
            log_external_call(
                LOGGER, "twilio", "send_sms", False,
                (time.perf_counter() - start) * 1000, error_code=e.code,
            )
            LOGGER.error(f"Twilio rejected SMS to {to}: {e.msg}")
            return SMSResult(success=False, status="failed", error_code=e.code, error_message=str(e.msg))
        except MissingCredentialsError as e:
            LOGGER.error(f"Cannot send SMS to {to}: {e}")
            return SMSResult(success=False, status="error", error_message=str(e))
        except Exception as e:
            self.circuit.record_failure()
            LOGGER.exception(f"Unexpected error sending SMS to {to}")
            return SMSResult(success=False, status="error", error_message=str(e))

        self.circuit.record_success()
        self.rate_limiter.record_call()
        log_external_call(
            LOGGER, "twilio", "send_sms", True,
            (time.perf_counter() - start) * 1000, sid=message.sid,
        )
        return SMSResult(success=True, sid=message.sid, status=message.status)


# Module-level singleton
_client: Optional[TwilioClient] = None


def get_twilio_client() -> TwilioClient:
    """Get the global TwilioClient instance."""
    global _client
    if _client is None:
        _client = TwilioClient()
    return _client


def reset_twilio_client() -> None:
    global _client
    _client = None


__all__ = [
    "TwilioClient",
    "SMSResult",
    "get_twilio_client",
    "reset_twilio_client",
]
