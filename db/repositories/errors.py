"""
Repository-layer exceptions for source, sync-run and storage flows.
"""

from __future__ import annotations


class SyncRepositoryError(Exception):
    """Base exception for sync repository failures."""


class SourceNotFoundError(SyncRepositoryError):
    """Raised when a referenced source does not exist."""


class SourceAccessError(SyncRepositoryError):
    """Raised when a source belongs to a different account than the caller."""


class SourceInactiveError(SyncRepositoryError):
    """Raised when a referenced source is not active."""


class SyncAlreadyRunningError(SyncRepositoryError):
    """Raised when a source already has a pending or running sync run."""


class InvalidRunTransitionError(SyncRepositoryError):
    """Raised when a sync run status change would leave the state machine."""


class ObjectStorageError(SyncRepositoryError):
    """Raised when writing a snapshot object to storage fails."""
