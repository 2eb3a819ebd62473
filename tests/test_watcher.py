"""Tests for the file watcher."""

import queue
import time
from pathlib import Path

from watchdog.events import DirCreatedEvent, FileDeletedEvent, FileModifiedEvent, FileMovedEvent

from prag.config import IndexingConfig, ProjectType, WatcherConfig
from prag.indexer.watcher import (
    CREATED,
    DELETED,
    MODIFIED,
    MOVED,
    FileEvent,
    ProjectWatcher,
    QueueingHandler,
)


class RecordingTarget:
    def __init__(self):
        self.calls = []

    def handle_file_change(self, path):
        self.calls.append(("change", Path(path).name))

    def handle_file_delete(self, path):
        self.calls.append(("delete", Path(path).name))

    def handle_directory_created(self, path):
        self.calls.append(("dir", Path(path).name))


def test_dispatch(tmp_path):
    target = RecordingTarget()
    watcher = ProjectWatcher([tmp_path], target)
    watcher.dispatch(FileEvent(CREATED, str(tmp_path / "a.md")))
    watcher.dispatch(FileEvent(MODIFIED, str(tmp_path / "a.md")))
    watcher.dispatch(FileEvent(DELETED, str(tmp_path / "b.md")))
    watcher.dispatch(FileEvent(MOVED, str(tmp_path / "c.md"), dest_path=str(tmp_path / "d.md")))
    watcher.dispatch(FileEvent(CREATED, str(tmp_path / "sub"), is_directory=True))
    assert target.calls == [
        ("change", "a.md"),
        ("change", "a.md"),
        ("delete", "b.md"),
        ("delete", "c.md"),
        ("change", "d.md"),
        ("dir", "sub"),
    ]


def test_handler_queues_events():
    events = queue.Queue(maxsize=10)
    handler = QueueingHandler(events, lambda path: False)
    handler.on_modified(FileModifiedEvent("/root/a.md"))
    handler.on_deleted(FileDeletedEvent("/root/b.md"))
    handler.on_moved(FileMovedEvent("/root/c.md", "/root/d.md"))
    handler.on_created(DirCreatedEvent("/root/sub"))

    got = [events.get_nowait() for _ in range(4)]
    assert [e.kind for e in got] == [MODIFIED, DELETED, MOVED, CREATED]
    assert got[2].dest_path == "/root/d.md"
    assert got[3].is_directory


def test_handler_drops_when_full():
    events = queue.Queue(maxsize=1)
    handler = QueueingHandler(events, lambda path: False)
    handler.on_modified(FileModifiedEvent("/root/a.md"))
    handler.on_modified(FileModifiedEvent("/root/b.md"))
    assert events.qsize() == 1


def test_ignores_excluded_directories(tmp_path):
    (tmp_path / "package.json").write_text("{}")
    node = ProjectType(name="Node.js", markers=frozenset({"package.json"}), exclude_paths=frozenset({"node_modules/"}))
    watcher = ProjectWatcher([tmp_path], RecordingTarget(), indexing=IndexingConfig(project_types=(node,)))
    assert watcher.is_ignored(str(tmp_path / "node_modules" / "x" / "index.js"))
    assert watcher.is_ignored(str(tmp_path / ".git" / "index"))
    assert not watcher.is_ignored(str(tmp_path / "src" / "index.js"))
    assert not watcher.is_ignored(str(tmp_path / "README.md"))


def test_live_watch_picks_up_new_file(tmp_path):
    target = RecordingTarget()
    watcher = ProjectWatcher([tmp_path], target, WatcherConfig(poll_timeout_seconds=0.1), IndexingConfig())
    watcher.start()
    try:
        assert watcher.is_running
        (tmp_path / "new.md").write_text("hello")
        deadline = time.monotonic() + 10
        while time.monotonic() < deadline and ("change", "new.md") not in target.calls:
            time.sleep(0.1)
    finally:
        watcher.stop()
    assert ("change", "new.md") in target.calls
    assert not watcher.is_running
