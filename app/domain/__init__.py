"""
app/domain package marker.
"""

from app.domain.sync import (
    EndpointResult,
    SourceConfig,
    SourceStatus,
    SyncRun,
    SyncRunStatus,
    derive_run_status,
    format_run_timestamp,
)

__all__ = [
    "EndpointResult",
    "SourceConfig",
    "SourceStatus",
    "SyncRun",
    "SyncRunStatus",
    "derive_run_status",
    "format_run_timestamp",
]
