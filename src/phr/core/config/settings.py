"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """PHR records server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback: the records server carries no auth layer of its own.
    phr_host: str = "127.0.0.1"
    phr_port: int = 8001
    phr_log_level: str = "info"
    phr_allow_insecure_bind: bool = False

    # Session identity the server starts with (empty = signed out)
    phr_user_id: str = ""

    # Record store
    store_backend: Literal["sqlite", "postgrest"] = "sqlite"

    # SQLite store
    db_path: str = "~/.phr/records.db"
    # Optional Fernet key; encrypts the metrics / testresults columns at rest
    encryption_key: str = ""

    # PostgREST (Supabase) store
    postgrest_url: str = ""
    postgrest_api_key: str = ""
    postgrest_access_token: str = ""
    postgrest_timeout_seconds: float = 10.0

    # Metric reading identifiers
    reading_id_strategy: Literal["timestamp", "uuid"] = "timestamp"


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
