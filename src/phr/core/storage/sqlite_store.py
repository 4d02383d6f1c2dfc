"""RecordStore backed by the local SQLite record database.

Mirrors the per-row CRUD contract of the remote store so channels can run
against a single-user local file. Optionally encrypts the semi-structured
text columns with a :class:`ColumnEncryptor`.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

from phr.core.storage.database import RecordDatabase
from phr.core.storage.encryption import ColumnEncryptor, EncryptionError
from phr.core.storage.store import Row, StoreError, StoreResponseError

logger = logging.getLogger(__name__)

# Writable columns per table. Table and column names are interpolated into
# SQL, so everything is checked against this map first.
_TABLE_COLUMNS: dict[str, frozenset[str]] = {
    "health_personal_info": frozenset(
        {"full_name", "age", "gender", "address", "marital_status", "children"}
    ),
    "health_vitals": frozenset({"height", "weight", "bmi", "blood_group"}),
    "health_lifestyle": frozenset(
        {"activity_level", "smoking_status", "alcohol_consumption"}
    ),
    "health_metrics": frozenset({"metrics"}),
    "health_lab_reports": frozenset(
        {"name", "date", "status", "fileurl", "testresults"}
    ),
}

_ENCRYPTED_COLUMNS: dict[str, tuple[str, ...]] = {
    "health_metrics": ("metrics",),
    "health_lab_reports": ("testresults",),
}


class SQLiteRecordStore:
    """Per-row CRUD over :class:`RecordDatabase`.

    Meant for a single-user local file: the methods are ``async`` to match
    :class:`RecordStore` but run their ``sqlite3`` calls directly on the
    event loop, which blocks it for the duration of each query.

    Usage::

        db = RecordDatabase(":memory:")
        db.initialize()
        store = SQLiteRecordStore(db, encryptor=ColumnEncryptor(key))

        row = await store.insert("health_vitals", {"user_id": "u1", "height": 170})
        same = await store.find_one("health_vitals", "u1")
    """

    def __init__(
        self, database: RecordDatabase, encryptor: ColumnEncryptor | None = None
    ) -> None:
        self._db = database
        self._enc = encryptor

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_one(self, table: str, user_id: str) -> Row | None:
        self._check_table(table)
        rows = self._select(
            f"SELECT * FROM {table} WHERE user_id = ? LIMIT 2", (user_id,)
        )
        if len(rows) > 1:
            raise StoreResponseError(
                f"Expected at most one {table} row for user {user_id}, found several"
            )
        if not rows:
            return None
        return self._decode_row(table, rows[0])

    async def find_all(self, table: str, user_id: str) -> list[Row]:
        self._check_table(table)
        rows = self._select(
            f"SELECT * FROM {table} WHERE user_id = ? ORDER BY created_at, rowid",
            (user_id,),
        )
        return [self._decode_row(table, row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, table: str, row: Row) -> Row:
        self._check_columns(table, row, allow_user_id=True)
        if not row.get("user_id"):
            raise StoreError(f"Cannot insert into {table} without a user_id")

        values = self._encode_fields(table, row)
        values["id"] = row.get("id") or self._new_id()
        values["updated_at"] = self._now_iso()

        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        self._execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            tuple(values.values()),
        )
        logger.info("Inserted %s row %s", table, values["id"])
        return await self._get_by_id(table, values["id"])

    async def update(self, table: str, row_id: str, fields: Row) -> Row:
        self._check_columns(table, fields, allow_user_id=True)
        values = self._encode_fields(table, fields)
        values["updated_at"] = self._now_iso()

        assignments = ", ".join(f"{column} = ?" for column in values)
        cursor = self._execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?",
            (*values.values(), row_id),
        )
        if cursor.rowcount == 0:
            raise StoreResponseError(f"No {table} row with id {row_id}")
        logger.info("Updated %s row %s", table, row_id)
        return await self._get_by_id(table, row_id)

    async def delete(self, table: str, row_id: str, user_id: str) -> int:
        self._check_table(table)
        cursor = self._execute(
            f"DELETE FROM {table} WHERE id = ? AND user_id = ?", (row_id, user_id)
        )
        logger.info("Deleted %d %s row(s) for id %s", cursor.rowcount, table, row_id)
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get_by_id(self, table: str, row_id: str) -> Row:
        rows = self._select(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        if not rows:
            raise StoreResponseError(f"{table} row {row_id} vanished after write")
        return self._decode_row(table, rows[0])

    def _select(self, query: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        try:
            return self._db.connection.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"SQLite read failed: {exc}") from exc

    def _execute(self, query: str, params: tuple[Any, ...]) -> sqlite3.Cursor:
        conn = self._db.connection
        try:
            cursor = conn.execute(query, params)
            conn.commit()
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            raise StoreResponseError(f"Constraint violated: {exc}") from exc
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreError(f"SQLite write failed: {exc}") from exc
        return cursor

    @staticmethod
    def _check_table(table: str) -> None:
        if table not in _TABLE_COLUMNS:
            raise StoreError(f"Unknown table: {table!r}")

    @classmethod
    def _check_columns(cls, table: str, fields: Row, *, allow_user_id: bool) -> None:
        cls._check_table(table)
        allowed = set(_TABLE_COLUMNS[table]) | {"id"}
        if allow_user_id:
            allowed.add("user_id")
        unknown = set(fields) - allowed
        if unknown:
            raise StoreError(f"Unknown column(s) for {table}: {sorted(unknown)}")

    def _encode_fields(self, table: str, fields: Row) -> dict[str, Any]:
        values = {k: v for k, v in fields.items() if k != "id"}
        if self._enc is not None:
            for column in _ENCRYPTED_COLUMNS.get(table, ()):
                if column in values:
                    values[column] = self._enc.encrypt(values[column])
        return values

    def _decode_row(self, table: str, row: sqlite3.Row) -> Row:
        data = dict(row)
        if self._enc is not None:
            for column in _ENCRYPTED_COLUMNS.get(table, ()):
                try:
                    data[column] = self._enc.decrypt(data.get(column))
                except EncryptionError as exc:
                    raise StoreResponseError(
                        f"Could not decrypt {table}.{column} for row {data.get('id')}"
                    ) from exc
        return data
