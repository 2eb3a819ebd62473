"""Composition root: wires settings, providers, stores and indexers together."""

import logging

from .config import Settings
from .embeddings.embedder import Embedder, EmbeddingProvider
from .indexer.indexer import ProjectIndexer
from .llm.claude import ClassificationProvider, ClaudeCompleter
from .models import ChatMessage, IndexProgress, RetrievalResult
from .registry import IndexerRegistry
from .retrieval.coordinator import RetrievalCoordinator
from .retrieval.intent import IntentGate
from .state.tracker import IndexStateTracker

logger = logging.getLogger(__name__)


class RagEngine:
    """Per-project indexing and retrieval behind one object.

    Providers default to sentence-transformers for embeddings and Claude for
    intent classification. Without an API key there is no intent gate and every
    message is retrieved for.
    """

    def __init__(
        self,
        settings: Settings,
        embedder: EmbeddingProvider | None = None,
        classifier: ClassificationProvider | None = None,
    ):
        self.settings = settings
        settings.data_path.mkdir(parents=True, exist_ok=True)
        self.embedder = embedder or Embedder(settings.embedding_model)

        if classifier is None and settings.claude_api_key and settings.intent.enabled:
            classifier = ClaudeCompleter(settings.claude_api_key, settings.claude_model)
        self.gate = IntentGate(classifier, settings.intent) if classifier is not None else None
        if self.gate is None:
            logger.info("No intent classifier configured, retrieving for every message")

        self.tracker = IndexStateTracker(settings.state_db_path)
        self.registry = IndexerRegistry(self._create_indexer)

    def _create_indexer(self, project_id: str) -> ProjectIndexer:
        return ProjectIndexer(project_id, self.settings, self.embedder, self.tracker)

    def indexer(self, project_id: str) -> ProjectIndexer:
        return self.registry.get(project_id)

    def ensure_indexed(self, project_id: str, paths, watch: bool = True) -> bool:
        return self.indexer(project_id).ensure_indexed(paths, watch)

    def get_index_progress(self, project_id: str) -> IndexProgress:
        return self.indexer(project_id).get_index_progress()

    def clear_and_reindex(self, project_id: str, paths, watch: bool = True) -> bool:
        return self.indexer(project_id).clear_and_reindex(paths, watch)

    def coordinator(self, project_id: str) -> RetrievalCoordinator:
        return RetrievalCoordinator(self.indexer(project_id).retriever(), self.gate)

    def retrieve(
        self,
        project_id: str,
        query: str,
        history: list[ChatMessage] | None = None,
        max_results: int | None = None,
    ) -> RetrievalResult:
        return self.coordinator(project_id).retrieve(query, history, max_results)

    def close(self) -> None:
        self.registry.close()
        if self.gate is not None:
            self.gate.close()
        self.tracker.close()

    def __enter__(self) -> "RagEngine":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
