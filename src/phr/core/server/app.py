"""PHR Health Records MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery (`fastmcp run ...app.py:mcp`)
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from phr.core.config.settings import Settings, get_settings
from phr.core.notifications.sink import RecordingNotificationSink
from phr.core.session.identity import SessionIdentity
from phr.core.storage.database import RecordDatabase
from phr.core.storage.encryption import ColumnEncryptor, EncryptionError
from phr.core.storage.postgrest_store import PostgRESTRecordStore
from phr.core.storage.sqlite_store import SQLiteRecordStore
from phr.core.storage.store import RecordStore
from phr.domains.records.domain_logic.metric_series import (
    timestamp_reading_id,
    uuid_reading_id,
)
from phr.domains.records.sync import RecordSyncLayer
from phr.domains.records.tools.record_tools import register_record_tools

logger = logging.getLogger(__name__)

_SERVER_NAME = "PHR Health Records"
_VERSION = "0.1.0"


def _build_store(settings: Settings) -> RecordStore:
    """Create the record store selected by ``STORE_BACKEND``.

    The PostgREST store owns one ``httpx.AsyncClient`` for the life of the
    server process and is released when the process exits. It is not closed
    from a lifespan hook because those run per client session and the store
    is shared by all of them.
    """
    if settings.store_backend == "postgrest":
        store = PostgRESTRecordStore(
            settings.postgrest_url,
            api_key=settings.postgrest_api_key,
            access_token=settings.postgrest_access_token,
            timeout=settings.postgrest_timeout_seconds,
        )
        logger.info("Record store: PostgREST at %s", settings.postgrest_url)
        return store

    encryptor: ColumnEncryptor | None = None
    if settings.encryption_key:
        try:
            encryptor = ColumnEncryptor(settings.encryption_key)
        except EncryptionError as exc:
            logger.error("Invalid ENCRYPTION_KEY: %s", exc)
            logger.warning("Continuing without column encryption")
    else:
        logger.info(
            "No ENCRYPTION_KEY configured; metrics and test results are stored "
            "unencrypted. Set ENCRYPTION_KEY to encrypt them at rest."
        )

    database = RecordDatabase(settings.db_path)
    database.initialize()
    logger.info(
        "Record store: SQLite at %s (schema v%d)",
        settings.db_path,
        database.get_schema_version(),
    )
    return SQLiteRecordStore(database, encryptor)


def create_app(
    *,
    store_override: RecordStore | None = None,
    identity_override: SessionIdentity | None = None,
    notifier_override: RecordingNotificationSink | None = None,
) -> FastMCP:
    """Create and configure the PHR Health Records MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Initializes the record store (SQLite or PostgREST)
    3. Creates the session identity and notification sink
    4. Wires the record sync layer over all five record channels
    5. Registers all tools
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        _SERVER_NAME,
        instructions=(
            "Personal health record server. Sign in, then view and edit "
            "personal information, vitals, lifestyle answers, longitudinal "
            "health metrics and lab reports through MCP tools."
        ),
    )

    # --- Record store ---
    store = store_override if store_override is not None else _build_store(settings)

    # --- Session ---
    identity = identity_override or SessionIdentity(settings.phr_user_id or None)
    notifications = notifier_override or RecordingNotificationSink()

    reading_id_factory = (
        uuid_reading_id if settings.reading_id_strategy == "uuid" else timestamp_reading_id
    )
    layer = RecordSyncLayer(
        identity, store, notifications, reading_id_factory=reading_id_factory
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": _SERVER_NAME,
            "version": _VERSION,
            "store_backend": "override" if store_override is not None else settings.store_backend,
            "signed_in": identity.user_id is not None,
            "is_loading": layer.is_loading,
        }

    register_record_tools(server, layer, identity, notifications)
    logger.info("Health record tools registered")

    return server


# Module-level instance for FastMCP discovery (`fastmcp run src/phr/core/server/app.py:mcp`).
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
