"""API route modules."""
from __future__ import annotations

from . import health, sms_webhooks

__all__ = [
    "health",
    "sms_webhooks",
]
