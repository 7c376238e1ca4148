"""
tests/test_local_object_storage.py
"""

from __future__ import annotations

import hashlib
import json
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock

from db.repositories.errors import ObjectStorageError
from db.repositories.storage import LocalObjectStorage, SupabaseObjectStorage


class LocalObjectStorageTests(unittest.TestCase):
    def test_put_writes_body_and_metadata_sidecar(self) -> None:
        with TemporaryDirectory() as tmp:
            storage = LocalObjectStorage(tmp)
            body = b'[{"id": 1}]'

            stored = storage.put(
                key="sources/A/S/run/contacts.json",
                body=body,
                metadata={"endpoint_name": "contacts"},
            )

            target = Path(tmp) / "sources" / "A" / "S" / "run" / "contacts.json"
            self.assertEqual(target.read_bytes(), body)
            sidecar = json.loads((target.parent / "contacts.json.metadata.json").read_text(encoding="utf-8"))
            self.assertEqual(sidecar["metadata"], {"endpoint_name": "contacts"})
            self.assertEqual(sidecar["content_type"], "application/json")
            self.assertEqual(stored.size_bytes, len(body))
            self.assertEqual(stored.checksum, hashlib.sha256(body).hexdigest())
            self.assertEqual(stored.location, target.as_posix())
            self.assertFalse((target.parent / "contacts.json.tmp").exists())

    def test_put_overwrites_existing_object(self) -> None:
        with TemporaryDirectory() as tmp:
            storage = LocalObjectStorage(tmp)
            storage.put(key="a/b.json", body=b"[1]", metadata={})
            storage.put(key="a/b.json", body=b"[2]", metadata={})

            self.assertEqual((Path(tmp) / "a" / "b.json").read_bytes(), b"[2]")

    def test_rejects_unsafe_keys(self) -> None:
        with TemporaryDirectory() as tmp:
            storage = LocalObjectStorage(tmp)
            for key in ("", "/etc/passwd", "../escape.json", "a/../../b.json", "a/nul\x00byte.json"):
                with self.subTest(key=key):
                    with self.assertRaises(ObjectStorageError):
                        storage.put(key=key, body=b"[]", metadata={})

    def test_filesystem_errors_become_storage_errors(self) -> None:
        with TemporaryDirectory() as tmp:
            (Path(tmp) / "blocked").write_bytes(b"not a directory")
            storage = LocalObjectStorage(tmp)

            with self.assertRaises(ObjectStorageError):
                storage.put(key="blocked/contacts.json", body=b"[]", metadata={})


class SupabaseObjectStorageTests(unittest.TestCase):
    def test_uploads_object_and_sidecar(self) -> None:
        client = MagicMock()
        bucket = client.storage.from_.return_value
        storage = SupabaseObjectStorage(client=client, bucket="snapshots", base_url="https://proj.supabase.co/")

        stored = storage.put(key="sources/A/S/run/contacts.json", body=b"[]", metadata={"record_count": "0"})

        client.storage.from_.assert_called_with("snapshots")
        self.assertEqual(bucket.upload.call_count, 2)
        first = bucket.upload.call_args_list[0].kwargs
        self.assertEqual(first["path"], "sources/A/S/run/contacts.json")
        self.assertEqual(first["file_options"]["content-type"], "application/json")
        second = bucket.upload.call_args_list[1].kwargs
        self.assertEqual(second["path"], "sources/A/S/run/contacts.json.metadata.json")
        self.assertEqual(
            stored.location,
            "https://proj.supabase.co/storage/v1/object/snapshots/sources/A/S/run/contacts.json",
        )

    def test_upload_failure_is_object_storage_error(self) -> None:
        client = MagicMock()
        client.storage.from_.return_value.upload.side_effect = RuntimeError("503 Service Unavailable")
        storage = SupabaseObjectStorage(client=client, bucket="snapshots")

        with self.assertRaises(ObjectStorageError):
            storage.put(key="a/b.json", body=b"[]", metadata={})
