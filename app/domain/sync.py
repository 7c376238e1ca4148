"""
app/domain/sync.py

Domain models for one sync run: the source being extracted, per-endpoint
results, and the run state machine.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any


class SyncRunStatus:
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


TERMINAL_RUN_STATUSES = frozenset({SyncRunStatus.SUCCEEDED, SyncRunStatus.PARTIAL, SyncRunStatus.FAILED})
ACTIVE_RUN_STATUSES = frozenset({SyncRunStatus.PENDING, SyncRunStatus.RUNNING})

# A pending run may fail without ever running (e.g. it could not be scheduled).
_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    SyncRunStatus.PENDING: frozenset({SyncRunStatus.RUNNING, SyncRunStatus.FAILED}),
    SyncRunStatus.RUNNING: TERMINAL_RUN_STATUSES,
}


def can_transition(current: str, target: str) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(current, frozenset())


class SourceStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class SourceConfig:
    """
    Everything the orchestrator needs to know about one configured source.
    """

    id: str
    account_id: str
    integration_type: str
    auth_config: Mapping[str, Any] = field(default_factory=dict)
    status: str = SourceStatus.ACTIVE
    base_url: str | None = None
    config: Mapping[str, Any] = field(default_factory=dict)
    enabled_endpoints: tuple[str, ...] | None = None
    name: str | None = None


@dataclass(frozen=True)
class EndpointResult:
    name: str
    success: bool
    record_count: int = 0
    error: str | None = None
    records: list[Any] = field(default_factory=list, repr=False)
    parent: str | None = None
    label: str | None = None
    snapshot_key: str | None = None

    @classmethod
    def succeeded(
        cls,
        name: str,
        records: list[Any],
        *,
        parent: str | None = None,
        label: str | None = None,
    ) -> EndpointResult:
        return cls(name=name, success=True, record_count=len(records), records=records, parent=parent, label=label)

    @classmethod
    def failed(
        cls,
        name: str,
        error: str,
        *,
        parent: str | None = None,
        label: str | None = None,
    ) -> EndpointResult:
        return cls(name=name, success=False, record_count=0, error=error, parent=parent, label=label)

    def to_summary(self) -> dict[str, Any]:
        summary: dict[str, Any] = {
            "name": self.name,
            "success": self.success,
            "record_count": self.record_count,
            "error": self.error,
        }
        if self.parent is not None:
            summary["parent"] = self.parent
        if self.label is not None:
            summary["label"] = self.label
        if self.snapshot_key is not None:
            summary["snapshot_key"] = self.snapshot_key
        return summary


def derive_run_status(results: Iterable[EndpointResult]) -> str:
    """
    Join endpoint outcomes into one run status.

    succeeded: every result succeeded. partial: at least one of each.
    failed: nothing succeeded or nothing ran.
    """

    outcomes = [result.success for result in results]
    if not outcomes or not any(outcomes):
        return SyncRunStatus.FAILED
    if all(outcomes):
        return SyncRunStatus.SUCCEEDED
    return SyncRunStatus.PARTIAL


def format_run_timestamp(moment: datetime | None = None) -> str:
    """
    UTC ISO-8601 with millisecond precision and a ``Z`` suffix.
    """

    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class SyncRun:
    id: str
    source_id: str
    account_id: str
    source_type: str
    run_timestamp: str
    started_at: datetime
    status: str = SyncRunStatus.RUNNING
    results: tuple[EndpointResult, ...] = ()
    error_message: str | None = None
    completed_at: datetime | None = None
    snapshot_location: str | None = None

    @property
    def total_records(self) -> int:
        return sum(result.record_count for result in self.results if result.success)

    @property
    def succeeded_endpoints(self) -> list[str]:
        return [result.name for result in self.results if result.success]

    @property
    def failed_endpoints(self) -> list[str]:
        return [result.name for result in self.results if not result.success]

    def result_for(self, name: str) -> EndpointResult | None:
        return next((result for result in self.results if result.name == name), None)

    def with_results(self, results: Iterable[EndpointResult]) -> SyncRun:
        materialized = tuple(results)
        return replace(self, results=materialized, status=derive_run_status(materialized))

    def to_summary(self) -> dict[str, Any]:
        return {
            "run_id": self.id,
            "source_id": self.source_id,
            "account_id": self.account_id,
            "source_type": self.source_type,
            "run_timestamp": self.run_timestamp,
            "status": self.status,
            "error_message": self.error_message,
            "snapshot_location": self.snapshot_location,
            "total_records": self.total_records,
            "endpoints": [result.to_summary() for result in self.results],
        }
