"""Text embedding using sentence-transformers."""

import logging
import threading
from typing import Protocol

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    """Anything that maps text to a fixed-dimension vector."""

    def embed(self, text: str) -> list[float]: ...

    def embed_query(self, text: str) -> list[float]: ...


class Embedder:
    """Embeds chunks and queries with a sentence-transformers model."""

    def __init__(self, model_name: str = "intfloat/e5-large-v2"):
        self.model_name = model_name
        self._model = None
        self._lock = threading.Lock()

    @property
    def model(self):
        """Lazy-load the embedding model."""
        if self._model is None:
            with self._lock:
                if self._model is None:
                    from sentence_transformers import SentenceTransformer
                    logger.info("Loading embedding model %s", self.model_name)
                    self._model = SentenceTransformer(self.model_name)
        return self._model

    def _encode(self, text: str) -> list[float]:
        return self.model.encode(text, normalize_embeddings=True).tolist()

    def embed(self, text: str) -> list[float]:
        """Embed a passage (a chunk being indexed)."""
        # e5 models need "passage: " prefix for documents
        return self._encode(f"passage: {text}" if self._is_e5 else text)

    def embed_query(self, text: str) -> list[float]:
        """Embed a search query."""
        # e5 models need "query: " prefix for queries
        return self._encode(f"query: {text}" if self._is_e5 else text)

    @property
    def _is_e5(self) -> bool:
        return "e5" in self.model_name.lower()
