"""
Shared environment-driven database configuration helpers.
"""

from __future__ import annotations

import os
from pathlib import Path

SUPPORTED_URL_PREFIXES = ("postgresql", "sqlite")


def load_env_files() -> None:
    """
    Load KEY=VALUE pairs from `.env` and `.env.local` at the project root.
    Variables already present in the process environment win.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.is_file():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if line.startswith("export "):
                line = line[len("export ") :].lstrip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key:
                os.environ.setdefault(key, value)


def normalize_database_url(url: str) -> str:
    """
    Rewrite bare postgres URLs to SQLAlchemy's psycopg (v3) driver form.
    """

    for legacy_scheme in ("postgres://", "postgresql://"):
        if url.startswith(legacy_scheme):
            return "postgresql+psycopg://" + url[len(legacy_scheme) :]
    return url


def resolve_database_url() -> str:
    """
    Resolve the database URL from DATABASE_URL, falling back to LOCAL_DATABASE_URL.
    """

    load_env_files()

    for name in ("DATABASE_URL", "LOCAL_DATABASE_URL"):
        candidate = (os.getenv(name) or "").strip()
        if not candidate:
            continue
        url = normalize_database_url(candidate)
        if not url.startswith(SUPPORTED_URL_PREFIXES):
            raise RuntimeError(f"{name} must point at PostgreSQL or SQLite, got '{url.split(':', 1)[0]}'.")
        return url

    raise RuntimeError("No database URL configured. Set DATABASE_URL or LOCAL_DATABASE_URL.")
