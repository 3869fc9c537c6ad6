"""Outbound SMS delivery and admin alerting.

Messages and alerts produced while a transition runs are collected in an
``Outbox`` and only delivered here once the transaction has committed.
A transport failure is logged and never undoes the transition.
"""
from __future__ import annotations

import time
from typing import List, Optional, Protocol

import httpx
from sqlalchemy.orm import Session

from core.config import get_settings
from core.logging_config import get_logger, log_external_call
from core.models import DeliveryStatus, MessageSource, SmsAdminConfig, SmsMessage
from core.types import AdminAlert, OutboundMessage, Outbox
from core.utils import CircuitBreaker, RateLimiter, truncate
from outreach.twilio_client import SMSResult, get_twilio_client
from services.message_log import MessageLogService

LOGGER = get_logger(__name__)

# Alert categories, each gated by a flag on SmsAdminConfig
CATEGORY_ERRORS = "errors"
CATEGORY_UNRECOGNIZED = "unrecognized"
CATEGORY_TIMEOUTS = "timeouts"

_CATEGORY_FLAGS = {
    CATEGORY_ERRORS: "notify_on_errors",
    CATEGORY_UNRECOGNIZED: "notify_on_unrecognized",
    CATEGORY_TIMEOUTS: "notify_on_timeouts",
}

# Circuit breaker for the Slack webhook
_slack_circuit = CircuitBreaker(name="slack_alerts", failure_threshold=3, recovery_timeout=300)

# Rate limiter for alerts (max 10 per minute)
_alert_rate_limiter = RateLimiter(max_calls=10, period_seconds=60)


class SmsTransport(Protocol):
    def send_sms(self, to: str, body: str) -> SMSResult: ...


def _status_for(result: SMSResult) -> str:
    if result.dry_run:
        return DeliveryStatus.DRY_RUN.value
    if result.success:
        return DeliveryStatus.SENT.value
    return DeliveryStatus.FAILED.value


class SmsNotifier:
    """
    Sends owner-facing SMS and records each send in the message log.
    """

    def __init__(self, session: Session, transport: Optional[SmsTransport] = None):
        self.session = session
        self.transport = transport or get_twilio_client()
        self.log = MessageLogService(session)

    def send(
        self,
        to: str,
        body: str,
        source: str = MessageSource.SYSTEM_RESPONSE.value,
        conversation_id: Optional[int] = None,
        listing_id: Optional[int] = None,
    ) -> SmsMessage:
        """
        Send one SMS and log the outcome.

        Returns:
            The outbound log entry (status sent, dry_run or failed).
        """
        try:
            result = self.transport.send_sms(to, body)
        except Exception as e:
            LOGGER.exception(f"Transport raised while sending to {to}")
            result = SMSResult(success=False, status="error", error_message=str(e))

        if not result.success:
            LOGGER.error(f"Failed to send SMS to {to}: {result.error_message}")

        return self.log.log_outbound(
            phone=to,
            body=body,
            source=source,
            status=_status_for(result),
            message_sid=result.sid,
            error_message=result.error_message,
            conversation_id=conversation_id,
            listing_id=listing_id,
        )

    def send_message(self, message: OutboundMessage) -> SmsMessage:
        return self.send(
            message.to,
            message.body,
            source=message.source,
            conversation_id=message.conversation_id,
            listing_id=message.listing_id,
        )


class AdminAlertService:
    """
    Notifies the admin about anomalies via Slack and/or SMS.

    Which categories are delivered is controlled by the ``sms_admin_config``
    row; without one every category is delivered.
    """

    def __init__(self, session: Session, transport: Optional[SmsTransport] = None):
        self.session = session
        self.settings = get_settings()
        self.notifier = SmsNotifier(session, transport)
        self.slack_circuit = _slack_circuit
        self.rate_limiter = _alert_rate_limiter

    def get_admin_config(self) -> Optional[SmsAdminConfig]:
        return self.session.query(SmsAdminConfig).order_by(SmsAdminConfig.id).first()

    def is_enabled(self, category: str) -> bool:
        config = self.get_admin_config()
        if config is None:
            return True
        flag = _CATEGORY_FLAGS.get(category)
        return bool(getattr(config, flag)) if flag else True

    def send_slack_alert(self, webhook_url: str, message: str) -> bool:
        """
        Send a Slack alert via webhook.

        Returns:
            True if sent successfully.
        """
        if self.settings.dry_run:
            LOGGER.info(f"[DRY RUN] Slack alert: {truncate(message)}")
            return True

        if not self.slack_circuit.can_execute():
            LOGGER.warning("Slack circuit breaker is open")
            return False

        start = time.perf_counter()
        try:
            response = httpx.post(
                webhook_url,
                json={"text": message},
                timeout=10,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.slack_circuit.record_failure()
            log_external_call(LOGGER, "slack", "post_alert", False, (time.perf_counter() - start) * 1000)
            LOGGER.error(f"Failed to send Slack alert: {e}")
            return False

        self.slack_circuit.record_success()
        log_external_call(LOGGER, "slack", "post_alert", True, (time.perf_counter() - start) * 1000)
        return True

    def notify(self, subject: str, details: str, category: str = CATEGORY_ERRORS) -> bool:
        """
        Send an admin alert.

        Args:
            subject: One-line summary.
            details: Free-form context (sender, message body, error).
            category: errors, unrecognized or timeouts.

        Returns:
            True if any channel accepted the alert.
        """
        if not self.is_enabled(category):
            LOGGER.debug(f"Admin alert suppressed ({category}): {subject}")
            return False

        if not self.rate_limiter.can_proceed():
            LOGGER.warning(f"Alert rate limit reached, dropping: {subject}")
            return False

        message = f"[{self.settings.platform_name} SMS] {subject}\n\n{details}"
        LOGGER.warning(f"Admin alert ({category}): {subject} | {truncate(details, 200)}")

        sent = False

        if self.settings.is_slack_alerting_enabled():
            if self.send_slack_alert(self.settings.admin_slack_webhook_url, message):
                sent = True

        if self.settings.is_sms_alerting_enabled():
            entry = self.notifier.send(
                self.settings.admin_alert_phone,
                truncate(message, 300),
                source=MessageSource.ADMIN_ALERT.value,
            )
            if entry.status != DeliveryStatus.FAILED.value:
                sent = True

        if sent:
            self.rate_limiter.record_call()

        return sent

    def notify_alert(self, alert: AdminAlert) -> bool:
        return self.notify(alert.subject, alert.details, alert.category)


def deliver_outbox(
    session: Session,
    outbox: Outbox,
    transport: Optional[SmsTransport] = None,
) -> List[SmsMessage]:
    """
    Deliver every queued SMS, then every queued admin alert.

    Returns:
        The outbound log entries for owner-facing messages, in send order.
    """
    notifier = SmsNotifier(session, transport)
    entries = [notifier.send_message(message) for message in outbox.messages]

    if outbox.alerts:
        alerts = AdminAlertService(session, transport)
        for alert in outbox.alerts:
            alerts.notify_alert(alert)

    return entries


__all__ = [
    "CATEGORY_ERRORS",
    "CATEGORY_UNRECOGNIZED",
    "CATEGORY_TIMEOUTS",
    "SmsTransport",
    "SmsNotifier",
    "AdminAlertService",
    "deliver_outbox",
]
