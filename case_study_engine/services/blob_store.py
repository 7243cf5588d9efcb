"""Blob store adapters: opaque keys holding JSON or binary payloads."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import anyio
import anyio.lowlevel
import anyio.to_thread
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from case_study_engine.core.config import settings
from case_study_engine.core.errors import BackingStoreError
from case_study_engine.services import storage_client

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class BlobStore:
    """Async key/value blob store interface."""

    async def get(self, key: str) -> bytes | None:
        raise NotImplementedError

    async def put(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def list(self, prefix: str) -> list[str]:
        """Return every key under prefix, sorted."""
        raise NotImplementedError

    async def get_json(self, key: str) -> Any | None:
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BackingStoreError(f"Corrupt JSON at {key}: {e}") from e

    async def put_json(self, key: str, payload: Any) -> None:
        await self.put(key, json.dumps(payload, indent=2).encode("utf-8"), content_type=JSON_CONTENT_TYPE)

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key under prefix; returns the number of keys removed."""
        keys = await self.list(prefix)
        for key in keys:
            await self.delete(key)
        return len(keys)


class InMemoryBlobStore(BlobStore):
    """Process-local store for development and tests."""

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self.objects: dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> bytes | None:
        await anyio.lowlevel.checkpoint()
        return self.objects.get(key)

    async def put(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        await anyio.lowlevel.checkpoint()
        self.objects[key] = bytes(data)

    async def delete(self, key: str) -> None:
        await anyio.lowlevel.checkpoint()
        self.objects.pop(key, None)

    async def list(self, prefix: str) -> list[str]:
        await anyio.lowlevel.checkpoint()
        return sorted(k for k in self.objects if k.startswith(prefix))


class LocalBlobStore(BlobStore):
    """Filesystem-backed store rooted at a directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        safe_key = key.lstrip("/").replace("\\", "/")
        if any(part == ".." for part in safe_key.split("/")):
            raise BackingStoreError(f"Invalid storage key: {key!r}")
        return self.root / safe_key

    async def get(self, key: str) -> bytes | None:
        path = self._path(key)

        def _read() -> bytes | None:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None

        try:
            return await anyio.to_thread.run_sync(_read)
        except OSError as e:
            raise BackingStoreError(f"Failed to read {key}: {e}") from e

    async def put(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(path.name + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)

        try:
            await anyio.to_thread.run_sync(_write)
        except OSError as e:
            raise BackingStoreError(f"Failed to write {key}: {e}") from e

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await anyio.to_thread.run_sync(lambda: path.unlink(missing_ok=True))
        except OSError as e:
            raise BackingStoreError(f"Failed to delete {key}: {e}") from e

    async def list(self, prefix: str) -> list[str]:
        root = self.root

        def _walk() -> list[str]:
            if not root.exists():
                return []
            keys = []
            for p in root.rglob("*"):
                if p.is_file() and not p.name.endswith(".tmp"):
                    key = p.relative_to(root).as_posix()
                    if key.startswith(prefix):
                        keys.append(key)
            return sorted(keys)

        try:
            return await anyio.to_thread.run_sync(_walk)
        except OSError as e:
            raise BackingStoreError(f"Failed to list {prefix}: {e}") from e


class S3BlobStore(BlobStore):
    """S3 (or S3-compatible) store; boto3 calls run in worker threads."""

    def __init__(self, bucket: str, client: BaseClient | None = None) -> None:
        if not bucket:
            raise BackingStoreError("S3 bucket name is not configured")
        self.bucket = bucket
        self._client = client

    @property
    def client(self) -> BaseClient:
        if self._client is None:
            self._client = storage_client.get_s3_client()
        return self._client

    async def get(self, key: str) -> bytes | None:
        def _get() -> bytes | None:
            try:
                response = self.client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") in MISSING_KEY_CODES:
                    return None
                raise
            return response["Body"].read()

        try:
            return await anyio.to_thread.run_sync(_get)
        except (ClientError, BotoCoreError) as e:
            raise BackingStoreError(f"S3 get failed for {key}: {e}") from e

    async def put(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        extra: dict[str, object] = {"ServerSideEncryption": "AES256"}
        if content_type:
            extra["ContentType"] = content_type

        try:
            await anyio.to_thread.run_sync(
                lambda: self.client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
            )
        except (ClientError, BotoCoreError) as e:
            raise BackingStoreError(f"S3 put failed for {key}: {e}") from e
        logger.debug("Uploaded s3://%s/%s (%d bytes)", self.bucket, key, len(data))

    async def delete(self, key: str) -> None:
        try:
            await anyio.to_thread.run_sync(lambda: self.client.delete_object(Bucket=self.bucket, Key=key))
        except (ClientError, BotoCoreError) as e:
            raise BackingStoreError(f"S3 delete failed for {key}: {e}") from e

    async def list(self, prefix: str) -> list[str]:
        def _list() -> list[str]:
            keys: list[str] = []
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(item["Key"] for item in page.get("Contents", []))
            return sorted(keys)

        try:
            return await anyio.to_thread.run_sync(_list)
        except (ClientError, BotoCoreError) as e:
            raise BackingStoreError(f"S3 list failed for {prefix}: {e}") from e


def blob_store_from_settings() -> BlobStore:
    """Build the configured blob store backend."""
    backend = settings.storage_backend
    if backend == "s3":
        return S3BlobStore(bucket=settings.S3_BUCKET.strip())
    if backend == "memory":
        logger.warning("Using in-memory blob store; data is lost on exit")
        return InMemoryBlobStore()
    # default local
    return LocalBlobStore(root=Path(settings.LOCAL_STORAGE_PATH))
