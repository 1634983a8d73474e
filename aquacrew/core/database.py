"""
Local SQL storage for per-installation state.

SQLite by default (``DATABASE_URL=sqlite:///./aquacrew_local.db``); any
SQLAlchemy URL works. Holds a single table, ``local_kv``, backing
SqlKeyValueStorage.
"""
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from aquacrew.core.config import settings

metadata = MetaData()

local_kv = Table(
    "local_kv",
    metadata,
    Column("key", String(200), primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

# Pool settings apply to server databases only
POOL_SIZE = 5
MAX_OVERFLOW = 10
POOL_RECYCLE = 3600

_engine: Optional[Engine] = None
_SessionLocal = None


def init_engine(database_url: Optional[str] = None) -> Engine:
    """(Re)bind the module engine; raises ValueError when no URL is configured."""
    global _engine, _SessionLocal

    url = database_url or settings.DATABASE_URL
    if not url:
        raise ValueError("DATABASE_URL is not configured; local storage falls back to memory only via build_storage().")

    if _engine is not None:
        _engine.dispose()

    if url.startswith("sqlite"):
        _engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        _engine = create_engine(url, pool_size=POOL_SIZE, max_overflow=MAX_OVERFLOW, pool_recycle=POOL_RECYCLE)
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


def dispose_engine() -> None:
    """Drop the cached engine (tests switch URLs between cases)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_db_session():
    """Session scope: commit on success, roll back on any error."""
    if _SessionLocal is None:
        init_engine()
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables() -> None:
    metadata.create_all(bind=get_engine())


def check_connection() -> bool:
    """Readiness probe for the local database."""
    try:
        with get_engine().connect() as conn:
            conn.execute(select(1))
        return True
    except Exception:
        return False
