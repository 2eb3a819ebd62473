"""Incremental re-indexing driven by file system events."""

import logging
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..config import IndexingConfig, WatcherConfig
from .filters import detect_project_types, exclude_patterns, should_exclude_directory

logger = logging.getLogger(__name__)

CREATED = "created"
MODIFIED = "modified"
DELETED = "deleted"
MOVED = "moved"


@dataclass(frozen=True)
class FileEvent:
    kind: str
    path: str
    is_directory: bool = False
    dest_path: str | None = None


class ChangeTarget(Protocol):
    """What the watcher drives. Implemented by ProjectIndexer."""

    def handle_file_change(self, path: Path) -> None: ...

    def handle_file_delete(self, path: Path) -> None: ...

    def handle_directory_created(self, path: Path) -> None: ...


class QueueingHandler(FileSystemEventHandler):
    """Turns watchdog callbacks into FileEvents on a bounded queue."""

    def __init__(self, events: queue.Queue, ignore):
        super().__init__()
        self._events = events
        self._ignore = ignore

    def _put(self, event: FileEvent):
        if self._ignore(event.path) and (event.dest_path is None or self._ignore(event.dest_path)):
            return
        try:
            self._events.put_nowait(event)
        except queue.Full:
            logger.warning("Watch queue full, dropping %s event for %s", event.kind, event.path)

    def on_created(self, event):
        self._put(FileEvent(CREATED, event.src_path, event.is_directory))

    def on_modified(self, event):
        # Directory mtime changes carry no content
        if not event.is_directory:
            self._put(FileEvent(MODIFIED, event.src_path))

    def on_deleted(self, event):
        self._put(FileEvent(DELETED, event.src_path, event.is_directory))

    def on_moved(self, event):
        self._put(FileEvent(MOVED, event.src_path, event.is_directory, event.dest_path))


class ProjectWatcher:
    """Watches directory roots recursively; one worker thread applies the events."""

    def __init__(
        self,
        roots: list[Path],
        target: ChangeTarget,
        config: WatcherConfig | None = None,
        indexing: IndexingConfig | None = None,
    ):
        self.roots = [Path(r) for r in roots]
        self.target = target
        self.config = config or WatcherConfig()
        self.events: queue.Queue[FileEvent] = queue.Queue(maxsize=self.config.queue_size)
        self._patterns = {}
        if indexing is not None:
            for root in self.roots:
                self._patterns[root] = exclude_patterns(indexing, detect_project_types(root, indexing.project_types))
        self._stop = threading.Event()
        self._observer = None
        self._worker = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def is_ignored(self, path: str) -> bool:
        """True for paths inside an excluded directory of their root."""
        p = Path(path)
        for root, patterns in self._patterns.items():
            if p.is_relative_to(root):
                rel_dir = p.parent.relative_to(root).as_posix()
                return should_exclude_directory(rel_dir, patterns)
        return False

    def start(self) -> None:
        handler = QueueingHandler(self.events, self.is_ignored)
        self._observer = Observer()
        for root in self.roots:
            self._observer.schedule(handler, str(root), recursive=True)
        self._observer.start()

        self._stop.clear()
        self._worker = threading.Thread(target=self._run, name="prag-watcher", daemon=True)
        self._worker.start()
        logger.info("Watching %s", ", ".join(str(r) for r in self.roots))

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout)
            self._observer = None
        if self._worker is not None and self._worker is not threading.current_thread():
            self._worker.join(timeout)
        self._worker = None
        logger.info("Stopped watching %s", ", ".join(str(r) for r in self.roots))

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                event = self.events.get(timeout=self.config.poll_timeout_seconds)
            except queue.Empty:
                continue
            try:
                self.dispatch(event)
            except Exception as e:
                logger.error("Failed to handle %s event for %s: %s", event.kind, event.path, e, exc_info=True)
            finally:
                self.events.task_done()

    def dispatch(self, event: FileEvent) -> None:
        """Apply one event to the target."""
        path = Path(event.path)
        if event.kind == DELETED:
            self.target.handle_file_delete(path)
        elif event.kind == MOVED:
            self.target.handle_file_delete(path)
            if event.dest_path:
                self._changed(Path(event.dest_path), event.is_directory)
        else:
            self._changed(path, event.is_directory)

    def _changed(self, path: Path, is_directory: bool) -> None:
        if is_directory:
            self.target.handle_directory_created(path)
        else:
            self.target.handle_file_change(path)
