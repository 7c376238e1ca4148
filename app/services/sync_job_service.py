"""
app/services/sync_job_service.py

Sync trigger, background execution and run status persistence.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from functools import lru_cache
from typing import Any, Protocol

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_secret_store_settings, get_snapshot_storage_settings
from app.connectors.secret_store import NangoSecretStore, SecretStore
from app.domain.sync import SourceConfig, SourceStatus
from app.services.connection_tester import ConnectionTester, ConnectionTestResult
from app.services.snapshot_writer import SnapshotWriter
from app.services.sync_orchestrator import SyncOrchestrator
from db.models.source import Source
from db.models.sync_run import SyncRunRecord
from db.repositories.errors import (
    SourceAccessError,
    SourceInactiveError,
    SourceNotFoundError,
    SyncAlreadyRunningError,
)
from db.repositories.source_repository import SourceRepository, to_source_config
from db.repositories.storage import build_object_storage
from db.repositories.sync_run_repository import SyncRunRepository

logger = logging.getLogger(__name__)


class SyncTaskExecutor(Protocol):
    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        ...


class FastAPIBackgroundTaskExecutor:
    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self._background_tasks = background_tasks

    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(task, *args, **kwargs)


class InlineTaskExecutor:
    """
    Runs the task immediately in the caller's thread (CLI and tests).
    """

    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        task(*args, **kwargs)


class SyncJobService:
    """
    Coordinates run creation, background execution, and status persistence.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        orchestrator: SyncOrchestrator | None = None,
        connection_tester: ConnectionTester | None = None,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

        self._orchestrator = orchestrator or _build_default_orchestrator()
        self._connection_tester = connection_tester

    def trigger_sync(
        self,
        *,
        db: Session,
        executor: SyncTaskExecutor,
        source_id: uuid.UUID,
        account_id: str,
    ) -> SyncRunRecord:
        source_repository = SourceRepository(db)
        run_repository = SyncRunRepository(db)

        with db.begin():
            source = self._load_source(source_repository, source_id=source_id, account_id=account_id)
            active_run = run_repository.get_active_run(source_id=source.id)
            if active_run is not None:
                raise SyncAlreadyRunningError(
                    f"Source {source.id} already has a {active_run.status} sync run ({active_run.id})."
                )
            run = run_repository.create_run(source_id=source.id, account_id=source.account_id)
            source_config = to_source_config(source)

        try:
            executor.submit(self._run_sync_job, run.id, source_config)
        except Exception:
            with db.begin():
                run_repository.mark_failed(run_id=run.id, error_message="Failed to schedule sync job.")
            raise

        logger.info("Sync run queued run=%s source=%s account=%s", run.id, source.id, account_id)
        return run

    def test_connection(self, *, db: Session, source_id: uuid.UUID, account_id: str) -> ConnectionTestResult:
        source = self._load_source(SourceRepository(db), source_id=source_id, account_id=account_id)
        tester = self._connection_tester or self._orchestrator.build_connection_tester()
        return tester.test(to_source_config(source))

    def get_run(self, *, db: Session, run_id: uuid.UUID) -> SyncRunRecord | None:
        return SyncRunRepository(db).get_run(run_id)

    def list_runs(
        self,
        *,
        db: Session,
        limit: int = 100,
        source_id: uuid.UUID | None = None,
        account_id: str | None = None,
        status: str | None = None,
    ) -> list[SyncRunRecord]:
        return SyncRunRepository(db).list_runs(
            limit=limit,
            source_id=source_id,
            account_id=account_id,
            status=status,
        )

    def _load_source(
        self,
        repository: SourceRepository,
        *,
        source_id: uuid.UUID,
        account_id: str,
    ) -> Source:
        source = repository.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(f"Source not found: {source_id}")
        if source.account_id != account_id:
            raise SourceAccessError(f"Source {source_id} does not belong to account {account_id}.")
        if source.status != SourceStatus.ACTIVE:
            raise SourceInactiveError(f"Source {source_id} is not active (status={source.status}).")
        return source

    def _run_sync_job(self, run_id: uuid.UUID, source: SourceConfig) -> None:
        with self._session_factory() as db:
            repository = SyncRunRepository(db)
            try:
                running = repository.mark_running(run_id=run_id)
                if running is None:
                    raise RuntimeError(f"Sync run not found: {run_id}")
                db.commit()

                result = self._orchestrator.run(source, run_id=str(run_id))

                finished = repository.mark_finished(run_id=run_id, result=result)
                if finished is None:
                    raise RuntimeError(f"Sync run not found: {run_id}")
                db.commit()
            except Exception as exc:
                self._mark_run_failed(db=db, run_id=run_id, exc=exc)

    def _mark_run_failed(self, *, db: Session, run_id: uuid.UUID, exc: Exception) -> None:
        repository = SyncRunRepository(db)
        error_message = f"{type(exc).__name__}: {exc}"
        logger.exception("Sync job failed id=%s error=%s", run_id, error_message)
        try:
            db.rollback()
            failed_run = repository.mark_failed(run_id=run_id, error_message=error_message[:2000])
            if failed_run is None:
                logger.error("Unable to mark sync run as failed because it was not found id=%s", run_id)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to persist failed sync run state id=%s", run_id)


def _build_secret_store() -> SecretStore | None:
    settings = get_secret_store_settings()
    if not settings.nango_secret_key:
        return None
    return NangoSecretStore.from_settings(settings)


def _build_default_orchestrator() -> SyncOrchestrator:
    storage_settings = get_snapshot_storage_settings()
    writer = SnapshotWriter(
        storage=build_object_storage(storage_settings),
        key_prefix=storage_settings.key_prefix,
    )
    return SyncOrchestrator.from_settings(secret_store=_build_secret_store(), snapshot_writer=writer)


@lru_cache(maxsize=1)
def get_sync_job_service() -> SyncJobService:
    return SyncJobService()
