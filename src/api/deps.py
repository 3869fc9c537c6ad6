"""Shared FastAPI dependencies."""
from __future__ import annotations

from typing import Generator

from sqlalchemy.orm import Session

from core.db import SessionLocal
from services.engine import RenewalSmsEngine, get_engine


def get_readonly_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a read-only database session.

    Yields:
        SQLAlchemy Session instance (rolled back on exit).
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


def get_sms_engine() -> RenewalSmsEngine:
    """FastAPI dependency returning the inbound SMS engine."""
    return get_engine()


__all__ = ["get_readonly_db", "get_sms_engine"]
