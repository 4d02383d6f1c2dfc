"""Shared test fixtures for PHR record tests."""

from __future__ import annotations

import asyncio
import itertools
import sys
from collections import Counter
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORE_BACKEND", "sqlite")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("PHR_USER_ID", "")
    monkeypatch.setenv("READING_ID_STRATEGY", "timestamp")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from phr.core.notifications.sink import RecordingNotificationSink  # noqa: E402
from phr.core.session.identity import SessionIdentity  # noqa: E402
from phr.core.storage.store import Row, StoreResponseError  # noqa: E402


# ---------------------------------------------------------------------------
# In-memory fake store
# ---------------------------------------------------------------------------

class FakeRecordStore:
    """Dict-backed RecordStore that counts calls and can be told to fail.

    ``fail["insert"] = StoreResponseError("boom")`` makes every insert raise
    until the entry is removed.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[Row]] = {}
        self.calls: Counter[str] = Counter()
        self.fail: dict[str, Exception] = {}
        self._ids = itertools.count(1)

    def seed(self, table: str, row: Row) -> Row:
        stored = {"id": f"row-{next(self._ids)}", **row}
        self.tables.setdefault(table, []).append(stored)
        return stored

    def rows(self, table: str, user_id: str | None = None) -> list[Row]:
        return [
            r for r in self.tables.get(table, [])
            if user_id is None or r.get("user_id") == user_id
        ]

    async def _enter(self, method: str) -> None:
        self.calls[method] += 1
        # Yield so concurrent callers can interleave like real I/O
        await asyncio.sleep(0)
        if method in self.fail:
            raise self.fail[method]

    @property
    def write_calls(self) -> int:
        return self.calls["insert"] + self.calls["update"] + self.calls["delete"]

    async def find_one(self, table: str, user_id: str) -> Row | None:
        await self._enter("find_one")
        rows = self.rows(table, user_id)
        if len(rows) > 1:
            raise StoreResponseError("several rows")
        return dict(rows[0]) if rows else None

    async def find_all(self, table: str, user_id: str) -> list[Row]:
        await self._enter("find_all")
        return [dict(r) for r in self.rows(table, user_id)]

    async def insert(self, table: str, row: Row) -> Row:
        await self._enter("insert")
        return dict(self.seed(table, row))

    async def update(self, table: str, row_id: str, fields: Row) -> Row:
        await self._enter("update")
        for row in self.tables.get(table, []):
            if row["id"] == row_id:
                row.update(fields)
                return dict(row)
        raise StoreResponseError(f"no row {row_id}")

    async def delete(self, table: str, row_id: str, user_id: str) -> int:
        await self._enter("delete")
        before = self.tables.get(table, [])
        kept = [r for r in before if not (r["id"] == row_id and r.get("user_id") == user_id)]
        self.tables[table] = kept
        return len(before) - len(kept)


@pytest.fixture
def fake_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def identity() -> SessionIdentity:
    """Identity already signed in as ``user-1`` (no listeners yet)."""
    return SessionIdentity("user-1")


@pytest.fixture
def sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def reading_ids():
    """Deterministic reading id factory: r1, r2, ..."""
    counter = itertools.count(1)
    return lambda metric_key: f"r{next(counter)}"


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def record_db():
    """Create an in-memory RecordDatabase for testing."""
    from phr.core.storage.database import RecordDatabase

    db = RecordDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def column_encryptor():
    """Create a ColumnEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from phr.core.storage.encryption import ColumnEncryptor

    return ColumnEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def sqlite_store(record_db):
    """Create a SQLiteRecordStore backed by in-memory SQLite."""
    from phr.core.storage.sqlite_store import SQLiteRecordStore

    return SQLiteRecordStore(record_db)


@pytest.fixture
def encrypted_store(record_db, column_encryptor):
    from phr.core.storage.sqlite_store import SQLiteRecordStore

    return SQLiteRecordStore(record_db, column_encryptor)


@pytest.fixture
def wire_test_results() -> list[dict[str, Any]]:
    """One lab test result in its stored (camelCase) form."""
    return [{
        "id": "t1",
        "testId": "ldl",
        "testName": "LDL Cholesterol",
        "value": "130",
        "unit": "mg/dL",
        "isAbnormal": True,
        "referenceRange": "<100",
    }]
