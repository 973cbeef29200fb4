from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from assignx.core.config import Settings, get_settings

settings = get_settings()


def engine_options(s: Settings) -> Dict[str, Any]:
    """
    Postgres gets a sized, pre-pinged pool. SQLite (local runs, the sweep
    job against a file db) must allow the TestClient / timer threads to
    share its connection.
    """
    if s.database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "echo": s.db_echo}
    return {
        "pool_pre_ping": True,
        "pool_size": s.db_pool_size,
        "max_overflow": s.db_max_overflow,
        "echo": s.db_echo,
    }


engine = create_engine(settings.database_url, **engine_options(settings))  # fail fast if missing

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for work outside a request (cron sweep, in-process timers)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
