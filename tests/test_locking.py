"""Test per-phone serialization."""
from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from core.exceptions import LockAcquisitionError
from core.models import PhoneLock
from core.utils import utcnow
from services.locking import PhoneLockService

from conftest import OWNER_PHONE


def _hold_lock_in_thread(service: PhoneLockService, phone: str):
    acquired = threading.Event()
    release = threading.Event()

    def worker():
        with service.phone_lock(phone):
            acquired.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=worker)
    thread.start()
    assert acquired.wait(timeout=5)
    return release, thread


class TestMemoryBackend:
    def test_same_phone_is_serialized(self, session_factory):
        holder = PhoneLockService(backend="memory", session_factory=session_factory, wait_seconds=5)
        waiter = PhoneLockService(backend="memory", session_factory=session_factory, wait_seconds=0.05)

        release, thread = _hold_lock_in_thread(holder, "+15555550001")
        try:
            with pytest.raises(LockAcquisitionError):
                with waiter.phone_lock("+15555550001"):
                    pass
        finally:
            release.set()
            thread.join()

        with waiter.phone_lock("+15555550001"):
            pass

    def test_different_phones_do_not_block(self, session_factory):
        holder = PhoneLockService(backend="memory", session_factory=session_factory, wait_seconds=5)
        other = PhoneLockService(backend="memory", session_factory=session_factory, wait_seconds=0.05)

        release, thread = _hold_lock_in_thread(holder, "+15555550002")
        try:
            with other.phone_lock("+15555550003"):
                pass
        finally:
            release.set()
            thread.join()

    def test_lock_released_after_error(self, session_factory):
        service = PhoneLockService(backend="memory", session_factory=session_factory, wait_seconds=0.05)

        with pytest.raises(ValueError):
            with service.phone_lock("+15555550004"):
                raise ValueError("boom")

        with service.phone_lock("+15555550004"):
            pass


class TestDatabaseBackend:
    def test_lease_blocks_other_instance(self, session_factory):
        first = PhoneLockService(backend="database", session_factory=session_factory, wait_seconds=0)
        second = PhoneLockService(backend="database", session_factory=session_factory, wait_seconds=0)

        assert first.acquire_lease(OWNER_PHONE) is True
        assert second.acquire_lease(OWNER_PHONE) is False

        first.release_lease(OWNER_PHONE)
        assert second.acquire_lease(OWNER_PHONE) is True

    def test_expired_lease_is_taken_over(self, session_factory, db_session):
        stale = utcnow() - timedelta(minutes=5)
        db_session.add(PhoneLock(
            lock_name=PhoneLockService.lock_name(OWNER_PHONE),
            locked_by="crashed-worker",
            locked_at=stale,
            expires_at=stale + timedelta(seconds=60),
        ))
        db_session.commit()

        service = PhoneLockService(backend="database", session_factory=session_factory, wait_seconds=0)

        assert service.acquire_lease(OWNER_PHONE) is True

    def test_phone_lock_releases_lease(self, session_factory, session_local):
        service = PhoneLockService(backend="database", session_factory=session_factory, wait_seconds=0)

        with service.phone_lock(OWNER_PHONE):
            with session_local() as session:
                assert session.query(PhoneLock).count() == 1

        with session_local() as session:
            assert session.query(PhoneLock).count() == 0

    def test_cleanup_expired_leases(self, session_factory, db_session):
        past = utcnow() - timedelta(hours=1)
        db_session.add_all([
            PhoneLock(lock_name="phone:+1", locked_by="a", locked_at=past, expires_at=past),
            PhoneLock(lock_name="phone:+2", locked_by="b", locked_at=past, expires_at=utcnow() + timedelta(hours=1)),
        ])
        db_session.commit()

        service = PhoneLockService(backend="database", session_factory=session_factory, wait_seconds=0)

        assert service.cleanup_expired_leases() == 1
