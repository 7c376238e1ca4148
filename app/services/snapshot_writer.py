"""
app/services/snapshot_writer.py

Persists each successful endpoint result of a sync run as one JSON object.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace

from app.domain.sync import EndpointResult, SourceConfig, SyncRun
from db.repositories.errors import ObjectStorageError
from db.repositories.storage import ObjectStorage

logger = logging.getLogger(__name__)

SNAPSHOT_CONTENT_TYPE = "application/json"


def _key_segment(value: str) -> str:
    return str(value).strip().replace("/", "_")


def build_snapshot_prefix(
    *,
    prefix: str,
    account_id: str,
    source_id: str,
    run_timestamp: str,
) -> str:
    segments = [_key_segment(account_id), _key_segment(source_id), run_timestamp]
    cleaned_prefix = prefix.strip("/")
    if cleaned_prefix:
        segments.insert(0, cleaned_prefix)
    return "/".join(segments)


def build_snapshot_key(
    *,
    prefix: str,
    account_id: str,
    source_id: str,
    run_timestamp: str,
    endpoint_name: str,
) -> str:
    """
    ``{prefix}/{accountId}/{sourceId}/{runTimestamp}/{endpointName}.json``
    """

    run_prefix = build_snapshot_prefix(
        prefix=prefix,
        account_id=account_id,
        source_id=source_id,
        run_timestamp=run_timestamp,
    )
    return f"{run_prefix}/{_key_segment(endpoint_name)}.json"


class SnapshotWriter:
    """
    Writes are independent per endpoint. A failed write downgrades only that
    endpoint's result; objects already written stay in place.
    """

    def __init__(self, *, storage: ObjectStorage, key_prefix: str = "sources") -> None:
        self._storage = storage
        self._key_prefix = key_prefix

    def persist(self, run: SyncRun, source: SourceConfig) -> SyncRun:
        updated: list[EndpointResult] = []
        written = 0
        for result in run.results:
            if not result.success:
                updated.append(result)
                continue
            updated_result = self._write_one(run, source, result)
            if updated_result.success:
                written += 1
            updated.append(updated_result)

        run_prefix = build_snapshot_prefix(
            prefix=self._key_prefix,
            account_id=run.account_id,
            source_id=run.source_id,
            run_timestamp=run.run_timestamp,
        )
        try:
            location = self._storage.location(run_prefix)
        except ObjectStorageError as exc:
            logger.error("Snapshot location unavailable source=%s run=%s error=%s", run.source_id, run.id, exc)
            location = None
        logger.info(
            "Snapshot written source=%s run=%s objects=%s location=%s",
            run.source_id,
            run.id,
            written,
            location,
        )
        return replace(run.with_results(updated), snapshot_location=location)

    def _write_one(self, run: SyncRun, source: SourceConfig, result: EndpointResult) -> EndpointResult:
        key = build_snapshot_key(
            prefix=self._key_prefix,
            account_id=run.account_id,
            source_id=run.source_id,
            run_timestamp=run.run_timestamp,
            endpoint_name=result.name,
        )
        body = json.dumps(result.records, default=str).encode("utf-8")
        metadata = {
            "source_id": str(source.id),
            "source_type": source.integration_type,
            "endpoint_name": result.name,
            "record_count": str(result.record_count),
            "run_timestamp": run.run_timestamp,
        }

        try:
            self._storage.put(key=key, body=body, metadata=metadata, content_type=SNAPSHOT_CONTENT_TYPE)
        except ObjectStorageError as exc:
            logger.error(
                "Snapshot write failed source=%s endpoint=%s key=%s error=%s",
                run.source_id,
                result.name,
                key,
                exc,
            )
            return replace(result, success=False, error=f"Snapshot write failed: {exc}")

        return replace(result, snapshot_key=key)
