"""
Schemas for sync trigger, run status and connection test endpoints.

Responses are serialized with camelCase keys (``jobId``, ``accountInfo``);
field names are still accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from db.models.sync_run import SyncRunRecord


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class SyncJobAcceptedResponse(CamelModel):
    job_id: UUID
    source_id: UUID
    status: str
    created_at: datetime


class EndpointResultResponse(CamelModel):
    name: str
    success: bool
    record_count: int = 0
    error: str | None = None
    parent: str | None = None
    label: str | None = None
    snapshot_key: str | None = None


class SyncRunStatusResponse(CamelModel):
    job_id: UUID
    source_id: UUID
    account_id: str
    status: str
    created_at: datetime
    updated_at: datetime
    run_timestamp: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_records: int = 0
    total_files: int = 0
    snapshot_location: str | None = None
    error_message: str | None = None
    endpoints: list[EndpointResultResponse] = Field(default_factory=list)

    @classmethod
    def from_record(cls, run: SyncRunRecord) -> SyncRunStatusResponse:
        return cls(
            job_id=run.id,
            source_id=run.source_id,
            account_id=run.account_id,
            status=run.status,
            created_at=run.created_at,
            updated_at=run.updated_at,
            run_timestamp=run.run_timestamp,
            started_at=run.started_at,
            completed_at=run.completed_at,
            total_records=run.total_records,
            total_files=run.total_files,
            snapshot_location=run.snapshot_location,
            error_message=run.error_message,
            endpoints=[EndpointResultResponse.model_validate(item) for item in (run.endpoint_results or [])],
        )


class SyncRunListResponse(CamelModel):
    runs: list[SyncRunStatusResponse] = Field(default_factory=list)


class ConnectionTestResponse(CamelModel):
    success: bool
    message: str
    account_info: dict[str, Any] = Field(default_factory=dict)
    error: int | str | None = None
