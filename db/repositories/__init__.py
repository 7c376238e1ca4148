"""
Repository layer exports.
"""

from db.repositories.errors import (
    InvalidRunTransitionError,
    ObjectStorageError,
    SourceAccessError,
    SourceInactiveError,
    SourceNotFoundError,
    SyncAlreadyRunningError,
    SyncRepositoryError,
)
from db.repositories.source_repository import SourceRepository, to_source_config
from db.repositories.storage import (
    LocalObjectStorage,
    ObjectStorage,
    SupabaseObjectStorage,
    build_object_storage,
)
from db.repositories.sync_run_repository import SyncRunRepository
from db.repositories.types import StoredObject

__all__ = [
    "SourceRepository",
    "SyncRunRepository",
    "to_source_config",
    "ObjectStorage",
    "LocalObjectStorage",
    "SupabaseObjectStorage",
    "build_object_storage",
    "StoredObject",
    "SyncRepositoryError",
    "SourceNotFoundError",
    "SourceAccessError",
    "SourceInactiveError",
    "SyncAlreadyRunningError",
    "InvalidRunTransitionError",
    "ObjectStorageError",
]
