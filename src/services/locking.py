"""Per-phone locking.

Inbound messages from the same phone number are processed one at a time.
Two backends are available:
- memory: a process-local lock per phone number (single worker deployments)
- database: a lease row in ``phone_lock`` shared by every worker, taken in
  addition to the process-local lock
"""
from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from datetime import timedelta
from typing import Callable, Dict, Generator, Optional

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import get_settings
from core.db import get_session_factory
from core.exceptions import LockAcquisitionError
from core.logging_config import get_logger
from core.models import PhoneLock
from core.utils import ensure_aware, generate_unique_key, utcnow

LOGGER = get_logger(__name__)

# Seconds between attempts to take a database lease
POLL_INTERVAL_SECONDS = 0.1

_registry_lock = threading.Lock()
_memory_locks: Dict[str, threading.Lock] = {}


def _memory_lock_for(phone: str) -> threading.Lock:
    with _registry_lock:
        lock = _memory_locks.get(phone)
        if lock is None:
            lock = threading.Lock()
            _memory_locks[phone] = lock
        return lock


class PhoneLockService:
    """
    Serializes webhook processing per phone number.

    Usage:
        locks = get_phone_lock_service()
        with locks.phone_lock("+17185550100"):
            # load, route and transition conversations for this phone
    """

    def __init__(
        self,
        backend: Optional[str] = None,
        session_factory: Optional[Callable] = None,
        timeout_seconds: Optional[int] = None,
        wait_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self.backend = backend or settings.phone_lock_backend
        self.session_factory = session_factory or get_session_factory()
        self.timeout_seconds = timeout_seconds or settings.phone_lock_timeout_seconds
        self.wait_seconds = settings.phone_lock_wait_seconds if wait_seconds is None else wait_seconds
        self.instance_id = generate_unique_key()

    @staticmethod
    def lock_name(phone: str) -> str:
        return f"phone:{phone}"

    # -------------------------------------------------------------------------
    # Database leases
    # -------------------------------------------------------------------------

    def _try_acquire_lease(self, session: Session, lock_name: str) -> bool:
        now = utcnow()
        expires_at = now + timedelta(seconds=self.timeout_seconds)

        existing = session.query(PhoneLock).filter(PhoneLock.lock_name == lock_name).first()

        if existing:
            if now < ensure_aware(existing.expires_at) and existing.locked_by != self.instance_id:
                return False
            if existing.locked_by != self.instance_id:
                LOGGER.info(f"Taking over expired lock {lock_name} from {existing.locked_by}")
            existing.locked_by = self.instance_id
            existing.locked_at = now
            existing.expires_at = expires_at
            session.flush()
            return True

        try:
            session.add(
                PhoneLock(
                    lock_name=lock_name,
                    locked_by=self.instance_id,
                    locked_at=now,
                    expires_at=expires_at,
                )
            )
            session.flush()
            return True
        except IntegrityError:
            session.rollback()
            return False

    def acquire_lease(self, phone: str) -> bool:
        """
        Take the database lease for a phone number, polling until the wait elapses.

        Returns:
            True if the lease was taken, False if another worker still holds it.
        """
        lock_name = self.lock_name(phone)
        deadline = time.monotonic() + self.wait_seconds

        while True:
            with self.session_factory() as session:
                if self._try_acquire_lease(session, lock_name):
                    LOGGER.debug(f"Acquired lease {lock_name}")
                    return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(POLL_INTERVAL_SECONDS)

    def release_lease(self, phone: str) -> None:
        lock_name = self.lock_name(phone)
        with self.session_factory() as session:
            lease = session.query(PhoneLock).filter(
                and_(
                    PhoneLock.lock_name == lock_name,
                    PhoneLock.locked_by == self.instance_id,
                )
            ).first()
            if lease:
                session.delete(lease)
                LOGGER.debug(f"Released lease {lock_name}")

    def cleanup_expired_leases(self) -> int:
        """
        Remove all expired lease rows.

        Returns:
            Number of leases removed.
        """
        with self.session_factory() as session:
            return session.query(PhoneLock).filter(PhoneLock.expires_at < utcnow()).delete()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @contextmanager
    def phone_lock(self, phone: str) -> Generator[None, None, None]:
        """
        Hold the per-phone lock for the duration of the block.

        Raises:
            LockAcquisitionError: If the lock is not acquired within the wait time.
        """
        memory_lock = _memory_lock_for(phone)
        if not memory_lock.acquire(timeout=self.wait_seconds):
            raise LockAcquisitionError(f"Timed out waiting for local lock on {phone}")

        try:
            if self.backend == "database":
                if not self.acquire_lease(phone):
                    raise LockAcquisitionError(f"Timed out waiting for lease on {phone}")
                try:
                    yield
                finally:
                    self.release_lease(phone)
            else:
                yield
        finally:
            memory_lock.release()


# Module-level singleton
_service: Optional[PhoneLockService] = None


def get_phone_lock_service() -> PhoneLockService:
    """Get the global PhoneLockService instance."""
    global _service
    if _service is None:
        _service = PhoneLockService()
    return _service


def reset_phone_lock_service() -> None:
    global _service
    _service = None


__all__ = [
    "PhoneLockService",
    "LockAcquisitionError",
    "get_phone_lock_service",
    "reset_phone_lock_service",
]
