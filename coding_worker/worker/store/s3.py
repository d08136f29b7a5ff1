"""S3 session storage.

Stores every file of a session directory as one object with optional
namespace prefix::

    s3://{bucket}/{prefix}/sessions/{session_id}/{relative_path}

When prefix is None, the key collapses to::

    s3://{bucket}/sessions/{session_id}/{relative_path}

Uses ``anyio.to_thread.run_sync`` to run boto3 calls in the thread pool,
matching the same async pattern as LocalSessionStorage.
"""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Any

import boto3
from anyio import to_thread
from botocore.config import Config
from loguru import logger

_DELETE_BATCH = 1000


def _create_s3_client(
    endpoint_url: str | None,
    access_key: str | None,
    secret_key: str | None,
    region: str | None = None,
    path_style: bool = False,
) -> Any:
    """Create a boto3 S3 client.

    Args:
        endpoint_url: S3 endpoint URL (``None`` for AWS).
        access_key: AWS access key ID.
        secret_key: AWS secret access key.
        region: AWS region name (optional, some endpoints require it).
        path_style: Use path-style addressing instead of virtual-hosted.
            Required by MinIO and some S3-compatible services.
    """
    config = Config(
        request_checksum_calculation="when_required",
        response_checksum_validation="when_required",
        s3={"addressing_style": "path" if path_style else "auto"},
    )

    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        region_name=region,
        config=config,
    )


class S3SessionStorage:
    """S3 implementation of the SessionStorage protocol.

    Uploads replace the stored copy: objects that no longer exist locally are
    deleted after the new files are written.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        prefix: str | None = None,
        region: str | None = None,
        path_style: bool = False,
        client: Any = None,
    ) -> None:
        self._bucket = bucket
        self._client = client or _create_s3_client(
            endpoint_url, access_key, secret_key, region=region, path_style=path_style
        )
        self._key_prefix = f"{prefix}/sessions/" if prefix else "sessions/"

    def _session_prefix(self, session_id: str) -> str:
        return f"{self._key_prefix}{session_id}/"

    # -- Transfer ----------------------------------------------------------------

    async def download(self, session_id: str, dest: Path) -> bool:
        return await to_thread.run_sync(partial(self._download_sync, session_id, Path(dest)))

    async def upload(self, session_id: str, source: Path) -> None:
        await to_thread.run_sync(partial(self._upload_sync, session_id, Path(source)))

    # -- Utilities ---------------------------------------------------------------

    async def list_sessions(self) -> list[str]:
        return await to_thread.run_sync(self._list_sessions_sync)

    async def delete(self, session_id: str) -> None:
        keys = await to_thread.run_sync(partial(self._list_keys, self._session_prefix(session_id)))
        await to_thread.run_sync(partial(self._delete_keys, keys))

    # -- Sync helpers (run in thread pool) ---------------------------------------

    def _list_keys(self, prefix: str) -> list[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys

    def _download_sync(self, session_id: str, dest: Path) -> bool:
        prefix = self._session_prefix(session_id)
        keys = self._list_keys(prefix)
        if not keys:
            return False
        for key in keys:
            relative = key[len(prefix) :]
            if not relative or relative.endswith("/"):
                continue
            target = dest / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            self._client.download_file(self._bucket, key, str(target))
        logger.debug("Downloaded {} objects for session {}", len(keys), session_id)
        return True

    def _upload_sync(self, session_id: str, source: Path) -> None:
        prefix = self._session_prefix(session_id)
        written: set[str] = set()
        for path in sorted(source.rglob("*")):
            if not path.is_file() or path.is_symlink():
                continue
            key = prefix + path.relative_to(source).as_posix()
            self._client.upload_file(str(path), self._bucket, key)
            written.add(key)
        stale = [key for key in self._list_keys(prefix) if key not in written]
        self._delete_keys(stale)
        logger.debug("Uploaded {} objects for session {} ({} stale removed)", len(written), session_id, len(stale))

    def _delete_keys(self, keys: list[str]) -> None:
        # S3 delete is idempotent -- no error if a key doesn't exist.
        for start in range(0, len(keys), _DELETE_BATCH):
            batch = keys[start : start + _DELETE_BATCH]
            self._client.delete_objects(
                Bucket=self._bucket,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )

    def _list_sessions_sync(self) -> list[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        sessions: list[str] = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=self._key_prefix, Delimiter="/"):
            for common in page.get("CommonPrefixes", []):
                sessions.append(common["Prefix"][len(self._key_prefix) :].rstrip("/"))
        return sorted(sessions)
