"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.source import Source
from db.models.sync_run import SyncRunRecord

__all__ = [
    "Source",
    "SyncRunRecord",
]
