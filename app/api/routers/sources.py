"""
Source sync trigger and connection test endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_account_id
from app.schemas.sync import ConnectionTestResponse, SyncJobAcceptedResponse
from app.services.sync_job_service import (
    FastAPIBackgroundTaskExecutor,
    SyncJobService,
    get_sync_job_service,
)
from db.repositories.errors import (
    SourceAccessError,
    SourceInactiveError,
    SourceNotFoundError,
    SyncAlreadyRunningError,
    SyncRepositoryError,
)
from db.session import get_db

router = APIRouter(tags=["sources"])

_ERROR_STATUS: dict[type[SyncRepositoryError], int] = {
    SourceNotFoundError: status.HTTP_404_NOT_FOUND,
    SourceAccessError: status.HTTP_403_FORBIDDEN,
    SourceInactiveError: status.HTTP_400_BAD_REQUEST,
    SyncAlreadyRunningError: status.HTTP_409_CONFLICT,
}


def _to_http_error(exc: SyncRepositoryError) -> HTTPException:
    return HTTPException(
        status_code=_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
        detail=str(exc),
    )


@router.post(
    "/sources/{source_id}/sync",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SyncJobAcceptedResponse,
)
def trigger_sync(
    source_id: UUID,
    background_tasks: BackgroundTasks,
    account_id: str = Depends(get_account_id),
    db: Session = Depends(get_db),
    service: SyncJobService = Depends(get_sync_job_service),
) -> SyncJobAcceptedResponse:
    try:
        run = service.trigger_sync(
            db=db,
            executor=FastAPIBackgroundTaskExecutor(background_tasks),
            source_id=source_id,
            account_id=account_id,
        )
    except SyncRepositoryError as exc:
        raise _to_http_error(exc) from exc

    return SyncJobAcceptedResponse(
        job_id=run.id,
        source_id=run.source_id,
        status=run.status,
        created_at=run.created_at,
    )


@router.post("/sources/{source_id}/test-connection", response_model=ConnectionTestResponse)
def run_connection_test(
    source_id: UUID,
    account_id: str = Depends(get_account_id),
    db: Session = Depends(get_db),
    service: SyncJobService = Depends(get_sync_job_service),
) -> ConnectionTestResponse:
    try:
        result = service.test_connection(db=db, source_id=source_id, account_id=account_id)
    except SyncRepositoryError as exc:
        raise _to_http_error(exc) from exc

    return ConnectionTestResponse(
        success=result.success,
        message=result.message,
        account_info=result.account_info,
        error=result.error,
    )
