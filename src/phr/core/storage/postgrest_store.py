"""RecordStore over a PostgREST endpoint (e.g. a Supabase project's REST API).

Every call is one HTTP round-trip. Row filters use PostgREST's
``column=eq.value`` syntax and writes ask for ``return=representation`` so the
stored row (with its server-assigned ``id``) comes back in the response.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from phr.core.storage.store import (
    Row,
    StoreConnectionError,
    StoreResponseError,
)

logger = logging.getLogger(__name__)

_RETURN_REPRESENTATION = {"Prefer": "return=representation"}


class PostgRESTRecordStore:
    """Async PostgREST client implementing :class:`RecordStore`.

    Usage::

        store = PostgRESTRecordStore(
            "https://project.supabase.co/rest/v1",
            api_key="anon-key",
            access_token=session_jwt,
        )
        row = await store.find_one("health_vitals", user_id)
        await store.aclose()
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str,
        access_token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("PostgREST base URL must be set")
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Accept": "application/json",
        }
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # RecordStore
    # ------------------------------------------------------------------

    async def find_one(self, table: str, user_id: str) -> Row | None:
        rows = await self._request(
            "GET",
            f"/{table}",
            params={"user_id": f"eq.{user_id}", "select": "*", "limit": "2"},
        )
        if len(rows) > 1:
            raise StoreResponseError(
                f"Expected at most one {table} row for user {user_id}, found several"
            )
        return rows[0] if rows else None

    async def find_all(self, table: str, user_id: str) -> list[Row]:
        return await self._request(
            "GET", f"/{table}", params={"user_id": f"eq.{user_id}", "select": "*"}
        )

    async def insert(self, table: str, row: Row) -> Row:
        rows = await self._request(
            "POST", f"/{table}", json=row, headers=_RETURN_REPRESENTATION
        )
        return self._single(rows, f"insert into {table}")

    async def update(self, table: str, row_id: str, fields: Row) -> Row:
        rows = await self._request(
            "PATCH",
            f"/{table}",
            params={"id": f"eq.{row_id}"},
            json=fields,
            headers=_RETURN_REPRESENTATION,
        )
        return self._single(rows, f"update of {table} row {row_id}")

    async def delete(self, table: str, row_id: str, user_id: str) -> int:
        rows = await self._request(
            "DELETE",
            f"/{table}",
            params={"id": f"eq.{row_id}", "user_id": f"eq.{user_id}"},
            headers=_RETURN_REPRESENTATION,
        )
        return len(rows)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> list[Row]:
        """Send a request and return the JSON array of row objects.

        Request bodies are encoded here with ``allow_nan=False`` so a
        non-finite float fails the same way on every httpx version.

        Raises:
            StoreResponseError: For an unencodable body, HTTP error statuses,
                a non-array body or array items that are not objects.
            StoreConnectionError: For connection / timeout errors.
        """
        if "json" in kwargs:
            try:
                kwargs["content"] = json.dumps(kwargs.pop("json"), allow_nan=False)
            except (TypeError, ValueError) as exc:
                raise StoreResponseError(
                    f"Could not encode {method} body for {path}: {exc}"
                ) from exc
            kwargs["headers"] = {
                **kwargs.get("headers", {}),
                "Content-Type": "application/json",
            }
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "PostgREST %s %s failed with %d", method, path, exc.response.status_code
            )
            raise StoreResponseError(
                f"Store error {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            logger.error("PostgREST %s %s unreachable: %s", method, path, exc)
            raise StoreConnectionError(f"Request error: {exc}") from exc

        if not response.content:
            return []
        try:
            body = response.json()
        except ValueError as exc:
            raise StoreResponseError(f"Invalid JSON from {path}") from exc
        if not isinstance(body, list):
            raise StoreResponseError(
                f"Expected JSON array from {path}, got {type(body).__name__}"
            )
        for item in body:
            if not isinstance(item, dict):
                raise StoreResponseError(
                    f"Expected row objects from {path}, got {type(item).__name__}"
                )
        return body

    @staticmethod
    def _single(rows: list[Row], what: str) -> Row:
        if not rows:
            raise StoreResponseError(f"No row returned by {what}")
        return rows[0]
