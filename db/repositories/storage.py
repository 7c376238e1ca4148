"""
Object storage backends for snapshot artifacts.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Protocol

from app.config import SnapshotStorageSettings
from db.repositories.errors import ObjectStorageError
from db.repositories.types import StoredObject

METADATA_SUFFIX = ".metadata.json"


class ObjectStorage(Protocol):
    """
    Minimal object storage contract used by the snapshot writer.
    """

    def put(
        self,
        *,
        key: str,
        body: bytes,
        metadata: Mapping[str, str],
        content_type: str = "application/json",
    ) -> StoredObject:
        ...

    def location(self, key: str) -> str:
        ...


def _validate_key(key: str) -> PurePosixPath:
    path = PurePosixPath(key)
    if not key or "\x00" in key or path.is_absolute() or any(part in {"", ".", ".."} for part in path.parts):
        raise ObjectStorageError(f"Invalid object key: '{key}'.")
    return path


def _metadata_document(metadata: Mapping[str, str], content_type: str) -> bytes:
    return json.dumps(
        {"content_type": content_type, "metadata": dict(metadata)},
        sort_keys=True,
        indent=2,
    ).encode("utf-8")


class LocalObjectStorage:
    """
    Local filesystem backend. Each object is written atomically with a JSON
    metadata sidecar next to it.
    """

    def __init__(self, root_dir: str | Path = "data/snapshots") -> None:
        self._root_dir = Path(root_dir)

    def location(self, key: str) -> str:
        return (self._root_dir / Path(*_validate_key(key).parts)).as_posix()

    def put(
        self,
        *,
        key: str,
        body: bytes,
        metadata: Mapping[str, str],
        content_type: str = "application/json",
    ) -> StoredObject:
        relative_path = Path(*_validate_key(key).parts)
        absolute_path = self._root_dir / relative_path
        sidecar_path = absolute_path.with_name(absolute_path.name + METADATA_SUFFIX)

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
        except (OSError, ValueError) as exc:
            raise ObjectStorageError(f"Failed to create storage directory for '{key}'.") from exc

        self._write_atomic(absolute_path, body, key)
        self._write_atomic(sidecar_path, _metadata_document(metadata, content_type), key)

        return StoredObject(
            key=key,
            location=absolute_path.as_posix(),
            content_type=content_type,
            size_bytes=len(body),
            checksum=hashlib.sha256(body).hexdigest(),
            stored_at=datetime.now(timezone.utc),
            metadata=dict(metadata),
        )

    def _write_atomic(self, target: Path, content: bytes, key: str) -> None:
        tmp_path = target.with_name(f"{target.name}.tmp")
        try:
            with tmp_path.open("wb") as handle:
                handle.write(content)
            tmp_path.replace(target)
        except (OSError, ValueError) as exc:
            raise ObjectStorageError(f"Failed to write object '{key}' to storage.") from exc
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass


class SupabaseObjectStorage:
    """
    Supabase Storage backend. Metadata travels as a sidecar object, the same
    layout the local backend produces.
    """

    def __init__(self, *, client: Any, bucket: str, base_url: str | None = None) -> None:
        self._client = client
        self._bucket = bucket
        self._base_url = (base_url or "").rstrip("/")

    @classmethod
    def from_settings(cls, settings: SnapshotStorageSettings) -> SupabaseObjectStorage:
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ObjectStorageError(
                "SNAPSHOT_SUPABASE_URL and SNAPSHOT_SUPABASE_SERVICE_KEY are required for the supabase backend."
            )
        from supabase import create_client

        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return cls(client=client, bucket=settings.supabase_bucket, base_url=settings.supabase_url)

    def location(self, key: str) -> str:
        _validate_key(key)
        if self._base_url:
            return f"{self._base_url}/storage/v1/object/{self._bucket}/{key}"
        return f"{self._bucket}/{key}"

    def put(
        self,
        *,
        key: str,
        body: bytes,
        metadata: Mapping[str, str],
        content_type: str = "application/json",
    ) -> StoredObject:
        _validate_key(key)
        bucket = self._client.storage.from_(self._bucket)
        try:
            bucket.upload(
                path=key,
                file=body,
                file_options={"content-type": content_type, "upsert": "true"},
            )
            bucket.upload(
                path=key + METADATA_SUFFIX,
                file=_metadata_document(metadata, content_type),
                file_options={"content-type": "application/json", "upsert": "true"},
            )
        except Exception as exc:
            raise ObjectStorageError(f"Failed to upload object '{key}' to bucket '{self._bucket}': {exc}") from exc

        return StoredObject(
            key=key,
            location=self.location(key),
            content_type=content_type,
            size_bytes=len(body),
            checksum=hashlib.sha256(body).hexdigest(),
            stored_at=datetime.now(timezone.utc),
            metadata=dict(metadata),
        )


def build_object_storage(settings: SnapshotStorageSettings) -> ObjectStorage:
    if settings.backend == "supabase":
        return SupabaseObjectStorage.from_settings(settings)
    return LocalObjectStorage(settings.local_root)
