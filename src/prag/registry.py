"""One long-lived ProjectIndexer per project id."""

import logging
import threading
from typing import Callable

from .indexer.indexer import ProjectIndexer

logger = logging.getLogger(__name__)


class IndexerRegistry:
    """Creates indexers on first use and closes them all together.

    Usable as a context manager.
    """

    def __init__(self, factory: Callable[[str], ProjectIndexer]):
        self._factory = factory
        self._indexers: dict[str, ProjectIndexer] = {}
        self._lock = threading.Lock()
        self._closed = False

    def get(self, project_id: str) -> ProjectIndexer:
        with self._lock:
            if self._closed:
                raise RuntimeError("IndexerRegistry is closed")
            indexer = self._indexers.get(project_id)
            if indexer is None:
                indexer = self._factory(project_id)
                self._indexers[project_id] = indexer
                logger.debug("Created indexer for project %s", project_id)
            return indexer

    def __contains__(self, project_id: str) -> bool:
        with self._lock:
            return project_id in self._indexers

    def __len__(self) -> int:
        with self._lock:
            return len(self._indexers)

    def remove(self, project_id: str) -> None:
        """Close and forget one project's indexer."""
        with self._lock:
            indexer = self._indexers.pop(project_id, None)
        if indexer is not None:
            indexer.close()

    def close(self) -> None:
        with self._lock:
            indexers = list(self._indexers.values())
            self._indexers.clear()
            self._closed = True
        for indexer in indexers:
            try:
                indexer.close()
            except Exception as e:
                logger.error("Failed to close indexer for %s: %s", indexer.project_id, e)

    def __enter__(self) -> "IndexerRegistry":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
