"""Unit tests for LocalSessionStorage and S3SessionStorage key layout.

No network required -- the local store uses a temporary directory and the S3
store runs against a mocked boto3 client.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from coding_worker.worker.store.base import SessionStorage
from coding_worker.worker.store.local import LocalSessionStorage
from coding_worker.worker.store.s3 import S3SessionStorage


def _make_session(root: Path, files: dict[str, str]) -> Path:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def store(tmp_path: Path) -> LocalSessionStorage:
    return LocalSessionStorage(tmp_path / "data")


# ---------------------------------------------------------------------------
# LocalSessionStorage
# ---------------------------------------------------------------------------


def test_local_store_satisfies_protocol(store: LocalSessionStorage) -> None:
    assert isinstance(store, SessionStorage)


async def test_upload_then_download(store: LocalSessionStorage, tmp_path: Path) -> None:
    source = _make_session(tmp_path / "src", {".session-metadata.json": "{}", "repo/app.py": "print(1)\n"})
    await store.upload("s1", source)

    dest = tmp_path / "restored"
    assert await store.download("s1", dest) is True
    assert (dest / ".session-metadata.json").read_text() == "{}"
    assert (dest / "repo" / "app.py").read_text() == "print(1)\n"


async def test_download_missing_session(store: LocalSessionStorage, tmp_path: Path) -> None:
    dest = tmp_path / "restored"
    assert await store.download("nope", dest) is False
    assert not dest.exists()


async def test_upload_replaces_previous_copy(store: LocalSessionStorage, tmp_path: Path) -> None:
    await store.upload("s1", _make_session(tmp_path / "v1", {"old.txt": "old", "keep.txt": "1"}))
    await store.upload("s1", _make_session(tmp_path / "v2", {"keep.txt": "2"}))

    dest = tmp_path / "restored"
    await store.download("s1", dest)
    assert not (dest / "old.txt").exists()
    assert (dest / "keep.txt").read_text() == "2"


async def test_list_and_delete(store: LocalSessionStorage, tmp_path: Path) -> None:
    assert await store.list_sessions() == []

    await store.upload("b", _make_session(tmp_path / "b", {"f": "b"}))
    await store.upload("a", _make_session(tmp_path / "a", {"f": "a"}))
    assert await store.list_sessions() == ["a", "b"]

    await store.delete("a")
    assert await store.list_sessions() == ["b"]

    # Delete non-existent is a no-op.
    await store.delete("nonexistent")


async def test_prefix_namespaces_sessions(tmp_path: Path) -> None:
    alice = LocalSessionStorage(tmp_path / "data", prefix="alice")
    bob = LocalSessionStorage(tmp_path / "data", prefix="bob")

    await alice.upload("s1", _make_session(tmp_path / "src", {"f": "alice"}))

    assert (tmp_path / "data" / "alice" / "sessions" / "s1" / "f").read_text() == "alice"
    assert await bob.download("s1", tmp_path / "dest") is False


# ---------------------------------------------------------------------------
# S3SessionStorage (mocked client)
# ---------------------------------------------------------------------------


def _paginator(pages: list[dict]) -> MagicMock:
    paginator = MagicMock()
    paginator.paginate.return_value = pages
    return paginator


async def test_s3_upload_writes_keys_and_prunes_stale(tmp_path: Path) -> None:
    client = MagicMock()
    client.get_paginator.return_value = _paginator([
        {"Contents": [{"Key": "team/sessions/s1/a.txt"}, {"Key": "team/sessions/s1/stale.txt"}]},
    ])
    s3 = S3SessionStorage("bucket", prefix="team", client=client)

    source = _make_session(tmp_path / "src", {"a.txt": "a", "sub/b.txt": "b"})
    await s3.upload("s1", source)

    uploaded = sorted(call.args[2] for call in client.upload_file.call_args_list)
    assert uploaded == ["team/sessions/s1/a.txt", "team/sessions/s1/sub/b.txt"]
    client.delete_objects.assert_called_once()
    deleted = client.delete_objects.call_args.kwargs["Delete"]["Objects"]
    assert deleted == [{"Key": "team/sessions/s1/stale.txt"}]


async def test_s3_download_missing_session(tmp_path: Path) -> None:
    client = MagicMock()
    client.get_paginator.return_value = _paginator([{}])
    s3 = S3SessionStorage("bucket", client=client)

    assert await s3.download("s1", tmp_path / "dest") is False
    client.download_file.assert_not_called()


async def test_s3_download_recreates_layout(tmp_path: Path) -> None:
    client = MagicMock()
    client.get_paginator.return_value = _paginator([
        {"Contents": [{"Key": "sessions/s1/.session-metadata.json"}, {"Key": "sessions/s1/repo/x.py"}]},
    ])
    s3 = S3SessionStorage("bucket", client=client)

    dest = tmp_path / "dest"
    assert await s3.download("s1", dest) is True
    targets = sorted(call.args[2] for call in client.download_file.call_args_list)
    assert targets == [str(dest / ".session-metadata.json"), str(dest / "repo" / "x.py")]


async def test_s3_list_sessions_uses_common_prefixes() -> None:
    client = MagicMock()
    client.get_paginator.return_value = _paginator([
        {"CommonPrefixes": [{"Prefix": "sessions/b/"}, {"Prefix": "sessions/a/"}]},
    ])
    s3 = S3SessionStorage("bucket", client=client)

    assert await s3.list_sessions() == ["a", "b"]
