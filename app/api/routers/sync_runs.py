"""
Sync run status endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_account_id
from app.schemas.sync import SyncRunListResponse, SyncRunStatusResponse
from app.services.sync_job_service import SyncJobService, get_sync_job_service
from db.session import get_db

router = APIRouter(tags=["sync-runs"])


@router.get("/sync-runs/{run_id}", response_model=SyncRunStatusResponse)
def get_sync_run(
    run_id: UUID,
    account_id: str = Depends(get_account_id),
    db: Session = Depends(get_db),
    service: SyncJobService = Depends(get_sync_job_service),
) -> SyncRunStatusResponse:
    run = service.get_run(db=db, run_id=run_id)
    # Runs owned by other accounts are reported as missing.
    if run is None or run.account_id != account_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sync run not found: {run_id}",
        )
    return SyncRunStatusResponse.from_record(run)


@router.get("/sync-runs", response_model=SyncRunListResponse)
def list_sync_runs(
    source_id: UUID | None = Query(default=None, description="Optional source filter"),
    status_filter: str | None = Query(default=None, alias="status", description="Optional status filter"),
    limit: int = Query(default=100, ge=1, le=500, description="Max runs returned"),
    account_id: str = Depends(get_account_id),
    db: Session = Depends(get_db),
    service: SyncJobService = Depends(get_sync_job_service),
) -> SyncRunListResponse:
    runs = service.list_runs(
        db=db,
        limit=limit,
        source_id=source_id,
        account_id=account_id,
        status=status_filter,
    )
    return SyncRunListResponse(runs=[SyncRunStatusResponse.from_record(run) for run in runs])

