"""
app/services package marker.
"""

from app.services.connection_tester import ConnectionTester, ConnectionTestResult
from app.services.snapshot_writer import SnapshotWriter, build_snapshot_key
from app.services.sync_job_service import SyncJobService, get_sync_job_service
from app.services.sync_orchestrator import SyncOrchestrator

__all__ = [
    "ConnectionTester",
    "ConnectionTestResult",
    "SnapshotWriter",
    "build_snapshot_key",
    "SyncJobService",
    "get_sync_job_service",
    "SyncOrchestrator",
]
