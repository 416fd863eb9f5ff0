"""
SQLAlchemy engine and session management.

Uses DATABASE_URL (e.g. PostgreSQL) when set; otherwise falls back to SQLite
at DATABASE_PATH (default chainpulse.db). The engine is created lazily and
cached; tests point DATABASE_PATH at a temp file and call reset_engine_for_test().
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from chainpulse.config.env import load_chainpulse_env
from chainpulse.logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

DEFAULT_SQLITE_PATH = "chainpulse.db"

_engine = None
_SessionLocal: sessionmaker | None = None


def get_database_url() -> str:
    """Return DATABASE_URL if set; else a SQLite URL from DATABASE_PATH or the default path."""
    load_chainpulse_env()
    url = (os.getenv("DATABASE_URL") or "").strip()
    if url:
        return url
    path = (os.getenv("DATABASE_PATH") or "").strip() or DEFAULT_SQLITE_PATH
    return f"sqlite:///{path}"


def _redacted(url: str) -> str:
    return url.split("?")[0].split("@")[-1].split("//")[-1]


def _get_engine():
    """Create or return the cached engine."""
    global _engine
    if _engine is None:
        url = get_database_url()
        connect_args: dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        _engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        logger.info("database_engine_created", url=_redacted(url))
    return _engine


def _get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=_get_engine())
    return _SessionLocal


@contextmanager
def session_scope() -> Iterator[Session]:
    """Context manager for a single session. Commits on success, rolls back on error."""
    session = _get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Create all tables if they do not exist. Safe to call on every startup."""
    from chainpulse.database import models  # noqa: F401  (registers tables on Base)

    try:
        Base.metadata.create_all(bind=_get_engine())
        logger.info("database_init", url=_redacted(get_database_url()))
    except Exception as e:
        logger.exception("database_init_failed", error=str(e))
        raise


def reset_engine_for_test() -> None:
    """Dispose and forget the cached engine and session factory. For tests only."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
