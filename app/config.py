"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

_ALLOWED_STORAGE_BACKENDS = {"local", "supabase"}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ConnectorHTTPSettings:
    """
    Shared HTTP behavior for every connector request.
    """

    timeout_seconds: float = 30.0
    max_attempts: int = 3
    rate_limit_base_delay_seconds: float = 0.1
    failure_delay_seconds: float = 1.0
    user_agent: str = "snapshot-sync/1.0"


@dataclass(frozen=True)
class SyncSettings:
    """
    Runtime settings for one sync run.
    """

    rate_limit_cooldown_seconds: float = 10.0
    max_rate_limit_retries: int = 5
    enrichment_max_pages: int = 5


@dataclass(frozen=True)
class SnapshotStorageSettings:
    """
    Object storage settings for snapshot artifacts.
    """

    backend: str = "local"
    key_prefix: str = "sources"
    local_root: str = "data/snapshots"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_bucket: str = "snapshots"


@dataclass(frozen=True)
class SecretStoreSettings:
    """
    Nango connection API settings used to resolve OAuth token references.
    """

    nango_base_url: str = "https://api.nango.dev"
    nango_secret_key: str | None = None
    timeout_seconds: float = 15.0


@lru_cache(maxsize=1)
def get_connector_http_settings() -> ConnectorHTTPSettings:
    """
    Return shared connector HTTP settings from environment variables.
    """

    return ConnectorHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("CONNECTOR_HTTP_TIMEOUT_SECONDS", 30.0)),
        max_attempts=max(1, _get_int_env("CONNECTOR_HTTP_MAX_ATTEMPTS", 3)),
        rate_limit_base_delay_seconds=max(
            0.0, _get_float_env("CONNECTOR_HTTP_RATE_LIMIT_BASE_DELAY_SECONDS", 0.1)
        ),
        failure_delay_seconds=max(0.0, _get_float_env("CONNECTOR_HTTP_FAILURE_DELAY_SECONDS", 1.0)),
        user_agent=_get_str_env("CONNECTOR_HTTP_USER_AGENT", "snapshot-sync/1.0"),
    )


@lru_cache(maxsize=1)
def get_sync_settings() -> SyncSettings:
    return SyncSettings(
        rate_limit_cooldown_seconds=max(0.0, _get_float_env("SYNC_RATE_LIMIT_COOLDOWN_SECONDS", 10.0)),
        max_rate_limit_retries=max(0, _get_int_env("SYNC_MAX_RATE_LIMIT_RETRIES", 5)),
        enrichment_max_pages=max(1, _get_int_env("SYNC_ENRICHMENT_MAX_PAGES", 5)),
    )


@lru_cache(maxsize=1)
def get_snapshot_storage_settings() -> SnapshotStorageSettings:
    """
    Return snapshot storage settings from environment variables.

    Raises RuntimeError when SNAPSHOT_STORAGE_BACKEND names an unknown backend.
    """

    backend = _get_str_env("SNAPSHOT_STORAGE_BACKEND", "local").lower()
    if backend not in _ALLOWED_STORAGE_BACKENDS:
        raise RuntimeError(
            f"SNAPSHOT_STORAGE_BACKEND '{backend}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_STORAGE_BACKENDS)}."
        )

    return SnapshotStorageSettings(
        backend=backend,
        key_prefix=_get_str_env("SNAPSHOT_KEY_PREFIX", "sources").strip("/"),
        local_root=_get_str_env("SNAPSHOT_LOCAL_ROOT", "data/snapshots"),
        supabase_url=_get_optional_str_env("SNAPSHOT_SUPABASE_URL"),
        supabase_service_key=_get_optional_str_env("SNAPSHOT_SUPABASE_SERVICE_KEY"),
        supabase_bucket=_get_str_env("SNAPSHOT_SUPABASE_BUCKET", "snapshots"),
    )


@lru_cache(maxsize=1)
def get_secret_store_settings() -> SecretStoreSettings:
    return SecretStoreSettings(
        nango_base_url=_get_str_env("NANGO_BASE_URL", "https://api.nango.dev"),
        nango_secret_key=_get_optional_str_env("NANGO_SECRET_KEY"),
        timeout_seconds=max(1.0, _get_float_env("NANGO_TIMEOUT_SECONDS", 15.0)),
    )
