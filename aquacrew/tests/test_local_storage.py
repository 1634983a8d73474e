"""
aquacrew/tests/test_local_storage.py
SQLite-backed key-value storage and quota persistence across restarts.
"""

import pytest

from aquacrew.core.database import check_connection, dispose_engine, init_engine
from aquacrew.core.kvstore import SqlKeyValueStorage
from aquacrew.features.usage.guard import UsageQuotaGuard


@pytest.fixture
def sqlite_storage(tmp_path):
    init_engine(f"sqlite:///{tmp_path / 'local.db'}")
    yield SqlKeyValueStorage()
    dispose_engine()


def test_get_missing_key_returns_none(sqlite_storage):
    assert sqlite_storage.get("@aquacrew_usage_data") is None


def test_set_inserts_then_overwrites(sqlite_storage):
    sqlite_storage.set("k", "one")
    sqlite_storage.set("k", "two")

    assert sqlite_storage.get("k") == "two"


def test_connection_check(sqlite_storage):
    assert check_connection() is True


def test_usage_counters_survive_restart(tmp_path, clock):
    url = f"sqlite:///{tmp_path / 'usage.db'}"
    init_engine(url)
    guard = UsageQuotaGuard(SqlKeyValueStorage(), today_fn=clock)
    guard.reserve("reads", 12)
    guard.reserve("functions")
    dispose_engine()

    init_engine(url)
    try:
        restored = UsageQuotaGuard(SqlKeyValueStorage(), today_fn=clock)
        assert restored.counters.reads_today == 12
        assert restored.counters.functions_today == 1
        assert restored.counters.last_reset == "2024-01-02"
    finally:
        dispose_engine()
