"""
Local persistent key-value storage.

A single string-keyed blob store with get/set. The SQL-backed variant survives
process restarts; the in-memory one is for tests and ephemeral runs.
"""
from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from sqlalchemy import select, update, insert

from aquacrew.core.database import get_db_session, local_kv, create_all_tables


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value


class SqlKeyValueStorage:
    """KeyValueStorage on the `local_kv` table (SQLite by default)."""

    def __init__(self, ensure_tables: bool = True):
        if ensure_tables:
            create_all_tables()

    def get(self, key: str) -> Optional[str]:
        with get_db_session() as session:
            row = session.execute(select(local_kv.c.value).where(local_kv.c.key == key)).first()
            return row.value if row else None

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc)
        with get_db_session() as session:
            result = session.execute(
                update(local_kv)
                .where(local_kv.c.key == key)
                .values(value=value, updated_at=now)
            )
            if result.rowcount == 0:
                session.execute(insert(local_kv).values(key=key, value=value, updated_at=now))
