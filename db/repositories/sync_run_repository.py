"""
Repository for sync run lifecycle persistence and status lookup.

Every status change goes through `_transition`, which rejects moves the run
state machine does not allow (terminal runs never change again).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.domain.sync import ACTIVE_RUN_STATUSES, SyncRun, SyncRunStatus, can_transition
from db.models.sync_run import SyncRunRecord
from db.repositories.errors import InvalidRunTransitionError, SyncAlreadyRunningError


class SyncRunRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_run(self, *, source_id: uuid.UUID, account_id: str) -> SyncRunRecord:
        run = SyncRunRecord(
            source_id=source_id,
            account_id=account_id,
            status=SyncRunStatus.PENDING,
            total_records=0,
            total_files=0,
        )
        self._session.add(run)
        try:
            self._session.flush()
        except IntegrityError as exc:
            # The partial unique index on active runs lost a race with another trigger.
            raise SyncAlreadyRunningError(f"Source {source_id} already has an active sync run.") from exc
        self._session.refresh(run)
        return run

    def get_run(self, run_id: uuid.UUID) -> SyncRunRecord | None:
        return self._session.get(SyncRunRecord, run_id)

    def get_active_run(self, *, source_id: uuid.UUID) -> SyncRunRecord | None:
        stmt: Select[tuple[SyncRunRecord]] = (
            select(SyncRunRecord)
            .where(SyncRunRecord.source_id == source_id)
            .where(SyncRunRecord.status.in_(sorted(ACTIVE_RUN_STATUSES)))
            .order_by(SyncRunRecord.created_at.desc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def list_runs(
        self,
        *,
        limit: int = 100,
        source_id: uuid.UUID | None = None,
        account_id: str | None = None,
        status: str | None = None,
    ) -> list[SyncRunRecord]:
        stmt: Select[tuple[SyncRunRecord]] = select(SyncRunRecord)

        if source_id is not None:
            stmt = stmt.where(SyncRunRecord.source_id == source_id)
        if account_id:
            stmt = stmt.where(SyncRunRecord.account_id == account_id)
        if status:
            stmt = stmt.where(SyncRunRecord.status == status)

        stmt = stmt.order_by(SyncRunRecord.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def mark_running(self, *, run_id: uuid.UUID) -> SyncRunRecord | None:
        run = self.get_run(run_id)
        if run is None:
            return None
        self._transition(run, SyncRunStatus.RUNNING)
        run.started_at = datetime.now(timezone.utc)
        run.completed_at = None
        run.error_message = None
        return run

    def mark_finished(self, *, run_id: uuid.UUID, result: SyncRun) -> SyncRunRecord | None:
        """
        Store the terminal outcome of an orchestrated run.
        """

        run = self.get_run(run_id)
        if run is None:
            return None
        self._transition(run, result.status)
        run.run_timestamp = result.run_timestamp
        run.completed_at = result.completed_at or datetime.now(timezone.utc)
        run.endpoint_results = [endpoint.to_summary() for endpoint in result.results]
        run.total_records = result.total_records
        run.total_files = sum(1 for endpoint in result.results if endpoint.snapshot_key)
        run.snapshot_location = result.snapshot_location
        run.error_message = result.error_message
        return run

    def mark_failed(
        self,
        *,
        run_id: uuid.UUID,
        error_message: str,
        endpoint_results: list[dict[str, Any]] | None = None,
    ) -> SyncRunRecord | None:
        run = self.get_run(run_id)
        if run is None:
            return None
        self._transition(run, SyncRunStatus.FAILED)
        run.completed_at = datetime.now(timezone.utc)
        run.error_message = error_message
        if endpoint_results is not None:
            run.endpoint_results = endpoint_results
        return run

    def _transition(self, run: SyncRunRecord, target: str) -> None:
        if not can_transition(run.status, target):
            raise InvalidRunTransitionError(
                f"Sync run {run.id} cannot move from '{run.status}' to '{target}'."
            )
        run.status = target
