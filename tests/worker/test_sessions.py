"""Unit tests for SessionFiles (local workspace layout, metadata, event log)."""

from __future__ import annotations

from coding_worker.worker.managers.sessions import EVENT_LOG_FILENAME, METADATA_FILENAME, SessionFiles
from coding_worker.worker.models.enums import EventType
from coding_worker.worker.models.events import build_event
from coding_worker.worker.models.session import RepositoryInfo, SessionMetadata


def test_session_root_is_deterministic(files: SessionFiles) -> None:
    assert files.session_root("abc") == files.work_root / "session-abc"
    assert files.session_root("abc") == files.session_root("abc")
    assert files.session_root("abc") != files.session_root("abd")


def test_execution_path(files: SessionFiles) -> None:
    metadata = SessionMetadata.new("s1", "claude-code")
    assert files.execution_path("s1", metadata) == files.session_root("s1")
    assert files.execution_path("s1", None) == files.session_root("s1")

    metadata.repository = RepositoryInfo(url="u", branch="main", cloned_path="repo")
    assert files.execution_path("s1", metadata) == files.session_root("s1") / "repo"


def test_create_exists_remove(files: SessionFiles) -> None:
    assert files.exists("s1") is False
    root = files.create_session_root("s1")
    (root / "nested").mkdir()
    assert files.exists("s1") is True
    assert files.list_local() == ["s1"]

    files.remove("s1")
    assert files.exists("s1") is False
    # Removing again is a no-op.
    files.remove("s1")


def test_load_metadata_absent(files: SessionFiles) -> None:
    files.create_session_root("s1")
    assert files.load_metadata("s1") is None


def test_save_metadata_overwrites(files: SessionFiles) -> None:
    files.create_session_root("s1")
    metadata = SessionMetadata.new("s1", "claude-code")
    files.save_metadata(metadata)
    metadata.session_name = "Renamed"
    files.save_metadata(metadata)

    loaded = files.load_metadata("s1")
    assert loaded is not None
    assert loaded.session_name == "Renamed"
    leftovers = [p.name for p in files.session_root("s1").iterdir()]
    assert leftovers == [METADATA_FILENAME]


def test_append_event_requires_session_root(files: SessionFiles) -> None:
    event = build_event(EventType.MESSAGE, message="hello")
    assert files.append_event("s1", event) is False
    assert not files.session_root("s1").exists()


def test_event_log_roundtrip(files: SessionFiles) -> None:
    files.create_session_root("s1")
    files.append_event("s1", build_event(EventType.MESSAGE, message="one"))
    files.append_event("s1", build_event(EventType.MESSAGE, message="two"))

    events = files.read_events("s1")
    assert [e.payload["message"] for e in events] == ["one", "two"]


def test_read_events_skips_garbage(files: SessionFiles) -> None:
    root = files.create_session_root("s1")
    files.append_event("s1", build_event(EventType.MESSAGE, message="ok"))
    with (root / EVENT_LOG_FILENAME).open("a") as f:
        f.write("not json\n\n")

    assert len(files.read_events("s1")) == 1
