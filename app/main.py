from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - A database URL must be configured (DATABASE_URL or LOCAL_DATABASE_URL).
    - SNAPSHOT_STORAGE_BACKEND must be a known backend; the supabase backend
      also needs SNAPSHOT_SUPABASE_URL and SNAPSHOT_SUPABASE_SERVICE_KEY.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    database_url = os.getenv("DATABASE_URL", "").strip()
    local_database_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    if not database_url and not local_database_url:
        errors.append("No database URL configured. Set DATABASE_URL or LOCAL_DATABASE_URL.")

    # --- Snapshot storage -----------------------------------------------
    backend = os.getenv("SNAPSHOT_STORAGE_BACKEND", "local").strip().lower() or "local"
    if backend not in {"local", "supabase"}:
        errors.append(
            f"SNAPSHOT_STORAGE_BACKEND='{backend}' is not valid. Allowed values: ['local', 'supabase']."
        )
    elif backend == "supabase":
        for name in ("SNAPSHOT_SUPABASE_URL", "SNAPSHOT_SUPABASE_SERVICE_KEY"):
            if not os.getenv(name, "").strip():
                errors.append(f"{name} is required when SNAPSHOT_STORAGE_BACKEND=supabase.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Every table registered on Base.metadata must exist in the database.
    Missing tables abort startup; migrations are never applied automatically.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 (registers ORM models on Base.metadata)
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        logging.getLogger(__name__).critical(
            "Schema mismatch, %d table(s) absent from the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema on boot."""
    _check_db()
    logging.getLogger(__name__).info("Database connectivity confirmed")
    _check_schema()
    logging.getLogger(__name__).info("Database schema validated")
    yield


def create_app(*, validate_env: bool = True, lifespan_checks: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    if validate_env:
        _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Snapshot Sync API",
        version="1.0.0",
        lifespan=_lifespan if lifespan_checks else None,
    )

    from app.api.routers import sources_router, sync_runs_router

    application.include_router(sources_router)
    application.include_router(sync_runs_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application
