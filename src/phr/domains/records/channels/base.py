"""Shared machinery for record channels.

A channel owns the in-memory cache of one record kind for the active user,
loads it from the store, and commits writes with insert-or-update semantics.
The cache only changes after the store has accepted a write.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, ClassVar, Generic, Mapping, TypeVar

from phr.core.notifications.sink import Notification, NotificationSink, Severity
from phr.core.session.identity import IdentityProvider
from phr.core.storage.store import RecordStore, Row, StoreError
from phr.domains.records.errors import (
    DecodeError,
    ExistenceCheckFailed,
    InvalidRecord,
    NotAuthenticated,
    ReadFailed,
    RecordSyncError,
    WriteFailed,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordChannel(Generic[T]):
    """Cache + loader + write coordination for one record kind.

    Loads and writes on one channel are serialized by an ``asyncio.Lock``,
    so the existence check and the write that follows it cannot interleave
    with another operation on the same channel.
    """

    table: ClassVar[str]
    # Used in "Please log in to ..." messages
    login_prompt: ClassVar[str]

    def __init__(
        self,
        identity: IdentityProvider,
        store: RecordStore,
        notifier: NotificationSink,
    ) -> None:
        self._identity = identity
        self._store = store
        self._notifier = notifier
        self._cache: T = self.default()
        self._is_loading = True
        self._lock = asyncio.Lock()
        self.last_error: RecordSyncError | None = None

    def default(self) -> T:
        raise NotImplementedError

    @property
    def cache(self) -> T:
        """Current known value. Treat as read-only."""
        return self._cache

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    def reset(self) -> None:
        """Drop cached state back to the channel default."""
        self._cache = self.default()
        self._is_loading = True
        self.last_error = None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Populate the cache for the active user.

        Never raises for store or decode problems: the cache keeps its
        previous value and the failure is logged. The loading flag is
        cleared in every case.
        """
        user_id = self._identity.user_id
        if user_id is None:
            self._is_loading = False
            return

        self._is_loading = True
        try:
            async with self._lock:
                await self._load(user_id)
        except ReadFailed as exc:
            logger.error("Loading %s failed for user %s: %s", self.table, user_id, exc)
        except DecodeError as exc:
            logger.warning(
                "Ignoring unusable %s data for user %s: %s", self.table, user_id, exc
            )
        finally:
            self._is_loading = False

    async def _load(self, user_id: str) -> None:
        raise NotImplementedError

    async def _fetch_one(self, user_id: str) -> Row | None:
        try:
            row = await self._store.find_one(self.table, user_id)
        except StoreError as exc:
            raise ReadFailed(f"Could not read {self.table}: {exc}") from exc
        if row is not None and not isinstance(row, dict):
            raise ReadFailed(f"Store returned a {type(row).__name__} for {self.table}")
        return row

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _require_user(self) -> str:
        user_id = self._identity.user_id
        if user_id is None:
            raise NotAuthenticated(f"Writing {self.table} requires a signed-in user")
        return user_id

    async def _upsert_row(self, user_id: str, fields: Row) -> Row:
        """Update the user's row if one exists, insert it otherwise.

        Returns the row as stored.
        """
        try:
            existing = await self._store.find_one(self.table, user_id)
        except StoreError as exc:
            raise ExistenceCheckFailed(
                f"Could not check for an existing {self.table} row: {exc}"
            ) from exc

        payload = {**fields, "user_id": user_id}
        try:
            if existing is not None and existing.get("id"):
                row_id = str(existing["id"])
                stored = await self._store.update(self.table, row_id, payload)
                return {"id": row_id, **(stored or {})}
            return await self._store.insert(self.table, payload)
        except StoreError as exc:
            raise WriteFailed(f"Could not save {self.table}: {exc}") from exc

    # ------------------------------------------------------------------
    # Outcome reporting
    # ------------------------------------------------------------------

    def _notify(self, title: str, description: str, severity: Severity = "info") -> None:
        try:
            self._notifier.notify(Notification(title, description, severity))
        except Exception:
            logger.exception("Notification sink failed for %r", title)

    def _succeed(self, title: str, description: str) -> bool:
        self.last_error = None
        self._notify(title, description)
        return True

    def _fail(self, exc: RecordSyncError, title: str, description: str) -> bool:
        self.last_error = exc
        if isinstance(exc, NotAuthenticated):
            title = "Authentication required"
            description = f"Please log in to {self.login_prompt}"
        logger.error("%s on %s: %s", type(exc).__name__, self.table, exc)
        self._notify(title, description, "error")
        return False


class SingleRowChannel(RecordChannel[T]):
    """Channel for entities stored as exactly one row per user."""

    model: ClassVar[type]
    success_title: ClassVar[str]
    success_description: ClassVar[str]
    failure_description: ClassVar[str]

    def default(self) -> T:
        return self.model()

    async def _load(self, user_id: str) -> None:
        row = await self._fetch_one(user_id)
        if row is None:
            return
        self._cache = self._from_row(row)

    def _from_row(self, row: Row) -> T:
        return self.model.from_row(row)

    def _merge(self, changes: Mapping[str, Any]) -> T:
        """Shallow-merge ``changes`` onto the cache without touching it."""
        unknown = set(changes) - set(self.model.WIRE_FIELDS)
        if unknown:
            raise InvalidRecord(f"Unknown field(s) for {self.table}: {sorted(unknown)}")
        return replace(self._cache, **changes)

    async def update(self, changes: Mapping[str, Any]) -> bool:
        """Merge ``changes`` into the record and persist it.

        Returns True on success. On failure the cache is unchanged,
        :attr:`last_error` holds the reason and an error notification is sent.
        """
        try:
            user_id = self._require_user()
            async with self._lock:
                merged = self._merge(changes)
                stored = await self._upsert_row(user_id, merged.to_row())
                self._cache = replace(merged, id=stored.get("id"), user_id=user_id)
        except RecordSyncError as exc:
            return self._fail(exc, "Update failed", self.failure_description)

        logger.info("Saved %s for user %s", self.table, user_id)
        return self._succeed(self.success_title, self.success_description)
