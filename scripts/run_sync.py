"""
Run one source sync from the CLI and print the run summary as JSON.

Exit codes: 0 when the run succeeded or was partial, 2 when it failed,
1 when it could not be started.
"""

from __future__ import annotations

import argparse
import json
import logging
import uuid
from collections.abc import Callable, Sequence

from sqlalchemy.orm import Session

from app.schemas.sync import SyncRunStatusResponse
from app.services.sync_job_service import InlineTaskExecutor, SyncJobService
from db.repositories.errors import SyncRepositoryError
from db.repositories.source_repository import SourceRepository
from db.session import SessionLocal


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a full snapshot sync for one source.")
    parser.add_argument("--source-id", dest="source_id", required=True, help="Source UUID to sync.")
    parser.add_argument(
        "--account-id",
        dest="account_id",
        default=None,
        help="Owning account id. Defaults to the source's own account.",
    )
    parser.add_argument("--log-level", dest="log_level", default="INFO")
    return parser.parse_args(argv)


def main(
    argv: Sequence[str] | None = None,
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    service: SyncJobService | None = None,
) -> int:
    args = _parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        source_id = uuid.UUID(args.source_id)
    except ValueError:
        print(json.dumps({"error": f"Invalid source id: {args.source_id}"}))
        return 1
    service = service or SyncJobService(session_factory=session_factory)

    with session_factory() as db:
        account_id = args.account_id
        if account_id is None:
            source = SourceRepository(db).get_source(source_id)
            if source is None:
                print(json.dumps({"error": f"Source not found: {source_id}"}))
                return 1
            account_id = source.account_id
            db.rollback()

        try:
            run = service.trigger_sync(
                db=db,
                executor=InlineTaskExecutor(),
                source_id=source_id,
                account_id=account_id,
            )
        except SyncRepositoryError as exc:
            print(json.dumps({"error": str(exc)}))
            return 1

    with session_factory() as db:
        finished = service.get_run(db=db, run_id=run.id)
        if finished is None:
            print(json.dumps({"error": f"Sync run disappeared: {run.id}"}))
            return 1
        payload = SyncRunStatusResponse.from_record(finished).model_dump(mode="json", by_alias=True)

    print(json.dumps(payload, indent=2))
    return 0 if payload["status"] in {"succeeded", "partial"} else 2


if __name__ == "__main__":
    raise SystemExit(main())
