"""Database engine, sessions and schema checks."""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import NullPool

from .config import get_settings
from .logging_config import get_logger

LOGGER = get_logger(__name__)
SETTINGS = get_settings()

# Tables the webhook cannot run without
REQUIRED_TABLES = ["listings", "listing_renewal_conversations", "sms_messages"]


def _build_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(
            url,
            pool_size=SETTINGS.db_pool_size,
            max_overflow=SETTINGS.db_max_overflow,
            pool_timeout=SETTINGS.db_pool_timeout,
            pool_pre_ping=True,
        )

    # One connection per session; WAL lets the scheduler read while a webhook writes
    sqlite_engine = create_engine(
        url,
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()

    return sqlite_engine


engine = _build_engine(SETTINGS.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


class SessionContextManager:
    """
    One unit of work: commit when the block succeeds, roll back when it raises.

    A failed commit is rolled back and re-raised, so callers see
    IntegrityError and friends as ordinary exceptions.
    """

    def __init__(self, factory: sessionmaker = SessionLocal):
        self.factory = factory
        self.session: Optional[Session] = None

    def __enter__(self) -> Session:
        self.session = self.factory()
        return self.session

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        session = self.session
        if session is None:
            return False
        try:
            if exc_type is None:
                session.commit()
            else:
                session.rollback()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        return False


def get_session_factory(factory: sessionmaker = SessionLocal) -> Callable[[], SessionContextManager]:
    """
    Factory of independent units of work.

    The engine, the sweep and the lock service each open several short
    transactions per call; tests pass a sessionmaker bound to their own database.

    Usage:
        session_factory = get_session_factory()
        with session_factory() as session:
            ...
    """
    return lambda: SessionContextManager(factory)


def _missing_required_tables(bind: Engine) -> List[str]:
    existing = set(inspect(bind).get_table_names())
    return [name for name in REQUIRED_TABLES if name not in existing]


def init_db(create_missing_only: bool = True) -> Dict[str, Any]:
    """
    Create tables from the models.

    Args:
        create_missing_only: Only create tables that do not exist yet.

    Returns:
        Dict with ``status`` (success, warning or error), ``tables_created``
        and ``tables_existing``.
    """
    from . import models  # noqa: F401

    result: Dict[str, Any] = {
        "status": "success",
        "tables_created": [],
        "tables_existing": [],
        "warnings": [],
    }

    try:
        existing = set(inspect(engine).get_table_names())
        declared = set(Base.metadata.tables)
        to_create = declared - existing if create_missing_only else declared

        Base.metadata.create_all(
            bind=engine,
            tables=[Base.metadata.tables[name] for name in sorted(to_create)],
        )
        result["tables_created"] = sorted(to_create - existing)
        result["tables_existing"] = sorted(existing)
        if result["tables_created"]:
            LOGGER.info(f"Created tables: {result['tables_created']}")

        missing = _missing_required_tables(engine)
        if missing:
            result["status"] = "warning"
            result["warnings"].append(f"Missing required tables: {missing}")
    except Exception as e:
        LOGGER.error(f"init_db failed: {e}")
        result["status"] = "error"
        result["error"] = str(e)

    return result


def validate_database() -> Dict[str, Any]:
    """
    Check connectivity and the required tables. Called at startup.

    Returns:
        Dict with ``status`` of ok, missing_tables or error.
    """
    result: Dict[str, Any] = {
        "status": "ok",
        "tables_found": [],
        "tables_missing": [],
        "errors": [],
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        result["tables_found"] = inspect(engine).get_table_names()
        result["tables_missing"] = _missing_required_tables(engine)
    except Exception as e:
        result["status"] = "error"
        result["errors"].append(str(e))
        return result

    if result["tables_missing"]:
        result["status"] = "missing_tables"
        result["errors"].append(f"Missing required tables: {result['tables_missing']}")
    return result


__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "SessionContextManager",
    "get_session_factory",
    "init_db",
    "validate_database",
    "REQUIRED_TABLES",
]
