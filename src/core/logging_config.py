"""Logging setup: plain text for development, one JSON object per line in production."""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple

TEXT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Record attributes promoted to top-level JSON keys
CONTEXT_FIELDS = ("phone", "message_sid", "conversation_id", "listing_id")

# Libraries that log every request at INFO
NOISY_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "twilio.http_client": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "apscheduler": logging.INFO,
}


class JSONFormatter(logging.Formatter):
    """Serializes each record, its conversation context and any exception as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class ContextLogger(logging.LoggerAdapter):
    """
    Attaches conversation context to every record.

    The context becomes record attributes (picked up by ``JSONFormatter``)
    and a ``[key=value ...]`` prefix on the message for text logs.

    Usage:
        log = get_context_logger(__name__, phone="+17185550100", message_sid="SM123")
        log.info("Routing inbound message")
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        context = {k: v for k, v in self.extra.items() if v is not None}
        kwargs["extra"] = {**context, **kwargs.get("extra", {})}
        if not context:
            return msg, kwargs
        prefix = " ".join(f"{k}={v}" for k, v in context.items())
        return f"[{prefix}] {msg}", kwargs


def _handler(handler: logging.Handler, json_format: bool) -> logging.Handler:
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_LOG_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """
    Configure the root logger. Safe to call more than once.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        log_file: Also write to this file.
        json_format: Emit JSON lines instead of text.
    """
    handlers = [_handler(logging.StreamHandler(sys.stdout), json_format)]
    if log_file:
        handlers.append(_handler(logging.FileHandler(log_file), json_format))

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_context_logger(name: str, **context: Any) -> ContextLogger:
    """Logger that tags every line with ``context`` (phone, message_sid, ...)."""
    return ContextLogger(logging.getLogger(name), context)


def log_external_call(
    logger: logging.Logger,
    service: str,
    operation: str,
    success: bool,
    duration_ms: float,
    **extra: Any,
) -> None:
    """
    Record one call to Twilio or Slack with its latency.

    Successful calls log at INFO, failures at WARNING; ``extra`` (message SID,
    error code) is attached as ``extra_data``.
    """
    details = {
        "service": service,
        "operation": operation,
        "success": success,
        "duration_ms": round(duration_ms, 2),
        **extra,
    }
    outcome = "completed in" if success else "failed after"
    logger.log(
        logging.INFO if success else logging.WARNING,
        f"External call: {service}.{operation} {outcome} {duration_ms:.2f}ms",
        extra={"extra_data": details},
    )


__all__ = [
    "setup_logging",
    "get_logger",
    "get_context_logger",
    "log_external_call",
    "JSONFormatter",
    "ContextLogger",
]
