"""Per-project indexing: walk, chunk, embed, dual-write, then watch."""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from ..config import Settings
from ..embeddings.embedder import EmbeddingProvider
from ..ingest.processor import build_chunks, compute_hash, extract_text
from ..models import Chunk, IndexedFileEntry, IndexProgress, IndexStatus, SourceType
from ..retrieval.hybrid import HybridRetriever
from ..state.tracker import IndexStateTracker
from ..storage import ChromaVectorStore, FtsKeywordStore, KeywordStoreBase, VectorStoreBase
from .filters import detect_project_types, is_indexable_file, iter_indexable_files, too_large
from .watcher import ProjectWatcher

logger = logging.getLogger(__name__)

FOLDERS = SourceType.FOLDERS.value
FILES = SourceType.FILES.value


class ProjectIndexer:
    """Owns one project's stores, progress and watcher.

    Indexing runs on a daemon worker thread; queries never wait for it. Store
    writes and the hash saved for them go through a single write lock, so a
    file's old chunks are always removed before its new ones are added.

    Files are identified by (source type, root, path relative to root). A run
    only prunes files under the roots and single-file paths it was given.
    """

    HALT_TIMEOUT = 10.0

    def __init__(
        self,
        project_id: str,
        settings: Settings,
        embedder: EmbeddingProvider,
        tracker: IndexStateTracker,
        vector_store: VectorStoreBase | None = None,
        keyword_store: KeywordStoreBase | None = None,
    ):
        self.project_id = project_id
        self.settings = settings
        self.embedder = embedder
        self.tracker = tracker

        index_dir = settings.project_index_dir(project_id)
        self.vector_store = vector_store or ChromaVectorStore(index_dir / "vector", project_id=project_id)
        self.keyword_store = keyword_store or FtsKeywordStore(index_dir / "keyword", project_id=project_id)

        self._progress = IndexProgress()
        self._progress_lock = threading.Lock()
        self._lifecycle_lock = threading.RLock()
        self._watch_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._entries_lock = threading.Lock()
        self._entries: dict[str, IndexedFileEntry] = {}
        self._roots: list[Path] = []
        # Each run gets its own event; a halted run stays halted after a restart
        self._run_stop = threading.Event()
        self._worker: threading.Thread | None = None
        self._watcher: ProjectWatcher | None = None

    # -- progress ---------------------------------------------------------

    def get_index_progress(self) -> IndexProgress:
        with self._progress_lock:
            return self._progress

    def _set_progress(self, stop: threading.Event | None = None, **changes) -> IndexProgress:
        """Replace the snapshot. Updates from a halted run are dropped."""
        with self._progress_lock:
            if stop is not None and stop.is_set():
                return self._progress
            self._progress = replace(self._progress, last_updated=datetime.now(), **changes)
            return self._progress

    # -- lifecycle --------------------------------------------------------

    def ensure_indexed(self, paths, watch: bool = True) -> bool:
        """Start background indexing if it has not run yet.

        Returns False only when a previous run failed.
        """
        with self._lifecycle_lock:
            progress = self.get_index_progress()
            if progress.status == IndexStatus.FAILED:
                logger.error("Index for project %s previously failed: %s", self.project_id, progress.error)
                return False
            if progress.status != IndexStatus.NOT_STARTED:
                return True

            self._set_progress(status=IndexStatus.INDEXING, files_indexed=0, files_total=0, error=None)
            self._run_stop = threading.Event()
            self._worker = threading.Thread(
                target=self._index_all,
                args=([Path(p) for p in paths], watch, self._run_stop),
                name=f"prag-indexer-{self.project_id}",
                daemon=True,
            )
            self._worker.start()
            return True

    def clear_and_reindex(self, paths, watch: bool = True) -> bool:
        """Drop the on-disk index and all hash state, then index from scratch."""
        logger.info("Clearing and re-indexing project %s", self.project_id)
        with self._lifecycle_lock:
            self._halt()
            with self._write_lock:
                self.vector_store.reset()
                self.keyword_store.reset()
                self.tracker.clear_project_state(self.project_id)
            with self._entries_lock:
                self._entries.clear()
            with self._progress_lock:
                self._progress = IndexProgress()
            return self.ensure_indexed(paths, watch)

    def stop_watching(self) -> None:
        with self._watch_lock:
            if self._watcher is not None:
                self._watcher.stop()
                self._watcher = None
            if self.get_index_progress().status == IndexStatus.WATCHING:
                self._set_progress(status=IndexStatus.READY)

    def wait(self, timeout: float | None = None) -> IndexProgress:
        """Block until the current indexing run finishes (or timeout)."""
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)
        return self.get_index_progress()

    def close(self) -> None:
        with self._lifecycle_lock:
            self._halt()
            self.vector_store.close()
            self.keyword_store.close()

    def _halt(self) -> None:
        self._run_stop.set()
        worker = self._worker
        if worker is not None and worker.is_alive() and worker is not threading.current_thread():
            worker.join(self.HALT_TIMEOUT)
            if worker.is_alive():
                logger.warning(
                    "Indexing worker for %s did not stop within %.1fs; it will write nothing further",
                    self.project_id,
                    self.HALT_TIMEOUT,
                )
        self._worker = None
        # The worker may have started a watcher just before its stop event was set
        self.stop_watching()

    def retriever(self) -> HybridRetriever:
        return HybridRetriever(self.embedder, self.vector_store, self.keyword_store, self.settings.retrieval)

    # -- full index -------------------------------------------------------

    def _index_all(self, paths: list[Path], watch: bool, stop: threading.Event) -> None:
        try:
            roots: list[Path] = []
            missing: list[Path] = []
            work: list[tuple[Path, Path, str]] = []
            for raw in paths:
                path = raw.expanduser().resolve()
                if path.is_dir():
                    roots.append(path)
                    work.extend((path, f, FOLDERS) for f in iter_indexable_files(path, self.settings.indexing))
                elif path.is_file():
                    if too_large(path, self.settings.indexing):
                        continue
                    work.append((path.parent, path, FILES))
                else:
                    logger.warning("Path does not exist, skipping: %s", path)
                    missing.append(path)

            total = len(work)
            logger.info("Indexing %d file(s) for project %s", total, self.project_id)
            self._set_progress(stop, files_total=total, files_indexed=0)

            interval = self.settings.indexing.progress_interval
            seen: dict[Path, set[str]] = {root: set() for root in roots}
            done = 0
            for root, file_path, source_type in work:
                if stop.is_set():
                    logger.info("Indexing of project %s interrupted", self.project_id)
                    return
                self._index_file(file_path, root, source_type, stop=stop)
                if source_type == FOLDERS:
                    seen[root].add(file_path.relative_to(root).as_posix())
                done += 1
                if done % interval == 0:
                    self._set_progress(stop, files_indexed=done)

            for root, present in seen.items():
                self._prune_root(root, present, stop)
            for path in missing:
                self._forget_path(path, stop)

            with self._watch_lock:
                if stop.is_set():
                    return
                self._roots = roots
                status = IndexStatus.READY
                if watch and roots:
                    self._start_watching(roots)
                    status = IndexStatus.WATCHING
                self._set_progress(stop, status=status, files_indexed=done, files_total=total)
            logger.info("Indexed %d file(s) for project %s", done, self.project_id)
        except Exception as e:
            logger.exception("Indexing failed for project %s", self.project_id)
            self._set_progress(stop, status=IndexStatus.FAILED, error=str(e))

    def _prune_root(self, root: Path, present: set[str], stop: threading.Event) -> None:
        """Drop files that left a walked folder and replace the folder's state with what is left."""
        key = root.as_posix()
        with self._write_lock:
            if stop.is_set():
                return
            hashes = self.tracker.get_all_hashes(self.project_id, FOLDERS, root=key)
            stale = set(hashes) - present
            if not stale:
                return
            logger.info("Removing %d deleted file(s) under %s from project %s", len(stale), key, self.project_id)
            for rel in stale:
                self._delete_from_stores(rel, key, FOLDERS)
            kept = {rel: h for rel, h in hashes.items() if rel not in stale}
            self.tracker.batch_save(self.project_id, FOLDERS, kept, root=key)

    def _forget_path(self, path: Path, stop: threading.Event) -> None:
        """Forget a path given to this run that no longer exists, as a single file or a folder."""
        file_key, folder_key = path.parent.as_posix(), path.as_posix()
        with self._write_lock:
            if stop.is_set():
                return
            if self.tracker.get_hash(self.project_id, path.name, FILES, root=file_key) is not None:
                self._delete_from_stores(path.name, file_key, FILES)
                self.tracker.remove_deleted(self.project_id, FILES, [path.name], root=file_key)
            tracked = self.tracker.get_all_file_paths(self.project_id, FOLDERS, root=folder_key)
            for rel in tracked:
                self._delete_from_stores(rel, folder_key, FOLDERS)
            self.tracker.remove_deleted(self.project_id, FOLDERS, tracked, root=folder_key)

    # -- per file ---------------------------------------------------------

    def _index_file(
        self,
        path: Path,
        root: Path,
        source_type: str,
        replace_existing: bool = False,
        stop: threading.Event | None = None,
    ) -> bool:
        """Index one file unless its content hash is unchanged.

        Returns True when the file was (re)written to the stores.
        """
        rel = path.relative_to(root).as_posix()
        key = root.as_posix()
        try:
            if too_large(path, self.settings.indexing):
                return False
            if stop is not None and stop.is_set():
                return False
            file_hash = compute_hash(path)
            stored = self.tracker.get_hash(self.project_id, rel, source_type, root=key)
            if stored == file_hash:
                self._track(path)
                return False

            text = extract_text(path)
            chunks = build_chunks(
                text,
                rel,
                self.project_id,
                self.settings.chunking.max_chars_per_chunk,
                self.settings.chunking.chunk_overlap,
                source_type=source_type,
                root=key,
            )

            with self._write_lock:
                if stop is not None and stop.is_set():
                    return False
                if stored is not None or replace_existing:
                    self._delete_from_stores(rel, key, source_type)
                complete = self._write_chunks(rel, chunks, stop)
                if complete:
                    self.tracker.save_hash(self.project_id, rel, source_type, file_hash, root=key)

            if not complete:
                logger.warning("Indexed %s partially; it will be retried on the next run", rel)
            self._track(path)
            logger.debug("Indexed %s (%d chunks)", rel, len(chunks))
            return True
        except Exception as e:
            logger.warning("Failed to index %s: %s", rel, e, exc_info=True)
            return False

    def _write_chunks(self, rel: str, chunks: list[Chunk], stop: threading.Event | None = None) -> bool:
        """Embed and add chunks in order. False if any chunk failed or the run was halted."""
        failed = 0
        for chunk in chunks:
            if stop is not None and stop.is_set():
                return False
            try:
                self.vector_store.add(chunk, self.embedder.embed(chunk.text))
            except Exception as e:
                failed += 1
                logger.error("Failed to embed chunk %d of %s: %s", chunk.chunk_index, rel, e)
        if stop is not None and stop.is_set():
            return False
        if chunks:
            self.keyword_store.add_chunks(chunks)
        return failed == 0

    def _delete_from_stores(self, rel: str, root: str, source_type: str) -> None:
        self.vector_store.delete_by_file_path(rel, root=root, source_type=source_type)
        self.keyword_store.delete_by_file_path(rel, root=root, source_type=source_type)

    def _track(self, path: Path) -> None:
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return
        with self._entries_lock:
            self._entries[str(path)] = IndexedFileEntry(path=str(path), last_modified=mtime, indexed=datetime.now())

    # -- watching ---------------------------------------------------------

    def _start_watching(self, roots: list[Path]) -> None:
        self._watcher = ProjectWatcher(roots, self, self.settings.watcher, self.settings.indexing)
        self._watcher.start()

    def _root_for(self, path: Path) -> Path | None:
        candidates = [r for r in self._roots if path.is_relative_to(r)]
        return max(candidates, key=lambda r: len(r.parts)) if candidates else None

    def _refresh_progress(self) -> None:
        with self._entries_lock:
            n = len(self._entries)
        self._set_progress(files_indexed=n, files_total=n)

    def handle_file_change(self, path: Path) -> bool:
        """Re-index a created or modified file under a watched root.

        Returns True when the stores were updated.
        """
        path = Path(path).resolve()
        root = self._root_for(path)
        if root is None or not path.is_file():
            return False

        detected = detect_project_types(root, self.settings.indexing.project_types)
        if not is_indexable_file(path, root, self.settings.indexing, detected):
            return False

        with self._entries_lock:
            entry = self._entries.get(str(path))
        if entry is not None and entry.last_modified == path.stat().st_mtime:
            return False

        updated = self._index_file(path, root, FOLDERS, replace_existing=True)
        if updated:
            logger.info("Re-indexed %s", path.relative_to(root).as_posix())
        self._refresh_progress()
        return updated

    def handle_file_delete(self, path: Path) -> None:
        """Forget a deleted file, or every tracked file under a deleted directory."""
        path = Path(path).resolve()
        root = self._root_for(path)
        if root is None:
            return

        key = root.as_posix()
        rel = path.relative_to(root).as_posix()
        prefix = rel + "/"
        tracked = self.tracker.get_all_file_paths(self.project_id, FOLDERS, root=key)
        targets = {r for r in tracked if r == rel or r.startswith(prefix)}
        targets.add(rel)

        with self._write_lock:
            for r in targets:
                self._delete_from_stores(r, key, FOLDERS)
            self.tracker.remove_deleted(self.project_id, FOLDERS, targets, root=key)

        key_prefix = str(path) + "/"
        with self._entries_lock:
            for entry_key in [k for k in self._entries if k == str(path) or k.startswith(key_prefix)]:
                del self._entries[entry_key]
        logger.info("Removed %s from index", rel)
        self._refresh_progress()

    def handle_directory_created(self, path: Path) -> None:
        """Index files that arrived with a new or moved-in directory."""
        path = Path(path)
        if not path.is_dir():
            return
        for f in sorted(path.rglob("*")):
            if f.is_file():
                self.handle_file_change(f)
