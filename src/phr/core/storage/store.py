"""Record store abstraction: per-row CRUD against the durable store.

Channels call these methods without knowing whether rows live in a local
SQLite file or behind a PostgREST (Supabase) endpoint. Semi-structured
columns (``metrics``, ``testresults``) travel as opaque text.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

Row = dict[str, Any]


class StoreError(Exception):
    """Raised when a store operation fails for any reason other than "not found"."""


class StoreConnectionError(StoreError):
    """The store could not be reached."""


class StoreResponseError(StoreError):
    """The store answered, but with an error or an unexpected shape."""


@runtime_checkable
class RecordStore(Protocol):
    """Abstract interface for the remote record store."""

    async def find_one(self, table: str, user_id: str) -> Row | None:
        """Return the single row owned by ``user_id``, or None if absent."""
        ...

    async def find_all(self, table: str, user_id: str) -> list[Row]:
        """Return every row owned by ``user_id`` (empty list if none)."""
        ...

    async def insert(self, table: str, row: Row) -> Row:
        """Insert a row and return it as stored (including its ``id``)."""
        ...

    async def update(self, table: str, row_id: str, fields: Row) -> Row:
        """Update the row with ``row_id`` and return it as stored."""
        ...

    async def delete(self, table: str, row_id: str, user_id: str) -> int:
        """Delete the row matching both ``row_id`` and ``user_id``.

        Returns the number of rows removed (0 or 1).
        """
        ...
