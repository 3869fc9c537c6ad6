"""Time helpers and guards for the outbound channels (Twilio, Slack)."""
from __future__ import annotations

import threading
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, Optional

from core.logging_config import get_logger

LOGGER = get_logger(__name__)


def utcnow() -> datetime:
    """Current UTC time, timezone-aware. Use instead of datetime.now()."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Treat naive datetimes as UTC.

    SQLite drops tzinfo on DateTime(timezone=True) columns, so values read
    back must be made aware before they are compared with utcnow().
    """
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


def generate_unique_key() -> str:
    return uuid.uuid4().hex


def truncate(text: Optional[str], limit: int = 50) -> str:
    """Shorten a message body for a log line."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


class CircuitBreaker:
    """
    Fails fast after repeated errors from an outbound channel.

    After ``failure_threshold`` consecutive failures the breaker opens and
    ``can_execute`` returns False for ``recovery_timeout`` seconds. The first
    call after that is a probe: success closes the breaker, failure reopens it.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.clock = clock

        self.state = self.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    def _move(self, state: str) -> None:
        LOGGER.info(f"Circuit {self.name}: {self.state} -> {state}")
        self.state = state

    def can_execute(self) -> bool:
        if self.state != self.OPEN:
            return True
        if self.clock() - (self.opened_at or 0) < self.recovery_timeout:
            return False
        self._move(self.HALF_OPEN)
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            self._move(self.CLOSED)
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != self.OPEN:
                self._move(self.OPEN)
            self.opened_at = self.clock()


class RateLimiter:
    """Sliding-window limiter: at most ``max_calls`` per ``period_seconds``."""

    def __init__(
        self,
        max_calls: int,
        period_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_calls = max_calls
        self.period_seconds = period_seconds
        self.clock = clock
        self.calls: Deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        while self.calls and now - self.calls[0] >= self.period_seconds:
            self.calls.popleft()

    def can_proceed(self) -> bool:
        with self._lock:
            self._prune(self.clock())
            return len(self.calls) < self.max_calls

    def record_call(self) -> None:
        with self._lock:
            self.calls.append(self.clock())

    def wait_time(self) -> float:
        """Seconds until the oldest call in the window ages out."""
        with self._lock:
            now = self.clock()
            self._prune(now)
            if len(self.calls) < self.max_calls:
                return 0.0
            return self.period_seconds - (now - self.calls[0])


__all__ = [
    "utcnow",
    "ensure_aware",
    "generate_unique_key",
    "truncate",
    "CircuitBreaker",
    "RateLimiter",
]
