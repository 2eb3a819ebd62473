"""ChromaDB vector store backend."""

import logging
import threading
from pathlib import Path
from typing import Any

import chromadb

from ..models import Chunk, SearchHit
from .base import VectorStoreBase

logger = logging.getLogger(__name__)


def _where(**conditions) -> dict[str, Any] | None:
    """Build a metadata filter from the conditions that are set."""
    clauses = [{key: value} for key, value in conditions.items() if value is not None]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaVectorStore(VectorStoreBase):
    """ChromaDB-backed persistent vector store, one collection per project.

    When project_id is given, queries and deletes only see that project's chunks.
    """

    def __init__(self, chroma_path: str | Path, collection_name: str = "chunks", project_id: str | None = None):
        self.chroma_path = Path(chroma_path)
        self.chroma_path.mkdir(parents=True, exist_ok=True)
        self.collection_name = collection_name
        self.project_id = project_id
        self.client = chromadb.PersistentClient(path=str(self.chroma_path))
        self._lock = threading.Lock()
        self._collection = None

    @property
    def collection(self) -> chromadb.Collection:
        if self._collection is None:
            self._collection = self.client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        return self._collection

    def add(self, chunk: Chunk, embedding: list[float]) -> None:
        with self._lock:
            self.collection.upsert(
                ids=[chunk.chunk_id],
                embeddings=[list(embedding)],
                documents=[chunk.text],
                metadatas=[chunk.to_metadata()],
            )

    def query(self, embedding: list[float], limit: int = 10, min_score: float = 0.0) -> list[SearchHit]:
        with self._lock:
            total = self.collection.count()
            if total == 0:
                return []
            results = self.collection.query(
                query_embeddings=[list(embedding)],
                n_results=min(limit, total),
                where=_where(project_id=self.project_id),
                include=["documents", "metadatas", "distances"],
            )

        hits = []
        if results and results["ids"] and results["ids"][0]:
            for i in range(len(results["ids"][0])):
                # Cosine distance -> similarity
                score = 1.0 - results["distances"][0][i]
                if score < min_score:
                    continue
                chunk = Chunk.from_metadata(results["documents"][0][i], results["metadatas"][0][i])
                hits.append(SearchHit(chunk=chunk, score=score))
        return hits

    def delete_by_file_path(self, file_path: str, root: str | None = None, source_type: str | None = None) -> None:
        where = _where(project_id=self.project_id, source_type=source_type, root=root, file_path=file_path)
        with self._lock:
            self.collection.delete(where=where)

    def count(self) -> int:
        with self._lock:
            return self.collection.count()

    def reset(self) -> None:
        with self._lock:
            # Make sure it exists so the delete cannot miss
            self.client.get_or_create_collection(name=self.collection_name)
            self.client.delete_collection(self.collection_name)
            self._collection = None
        logger.info("Vector index reset at %s", self.chroma_path)
