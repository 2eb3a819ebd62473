"""Hybrid retrieval: vector and keyword search merged with Reciprocal Rank Fusion."""

import logging
import math
from concurrent.futures import ThreadPoolExecutor

from ..config import RetrievalConfig
from ..embeddings.embedder import EmbeddingProvider
from ..models import ScoredChunk, SearchHit
from ..storage import KeywordStoreBase, VectorStoreBase

logger = logging.getLogger(__name__)


def reciprocal_rank_fusion(
    vector_hits: list[SearchHit],
    keyword_hits: list[SearchHit],
    k: int = 60,
) -> list[ScoredChunk]:
    """Merge two rankings by summing 1/(k + rank) per chunk id.

    Ranks are 1-based. Ties on the fused score go to the better vector rank,
    then the better keyword rank.
    """
    scores: dict[str, float] = {}
    chunks = {}
    vector_ranks: dict[str, int] = {}
    keyword_ranks: dict[str, int] = {}

    for ranks, hits in ((vector_ranks, vector_hits), (keyword_ranks, keyword_hits)):
        for rank, hit in enumerate(hits, 1):
            cid = hit.chunk_id
            # A chunk listed twice in one ranking counts at its best rank
            if cid in ranks:
                continue
            ranks[cid] = rank
            chunks.setdefault(cid, hit.chunk)
            scores[cid] = scores.get(cid, 0.0) + 1.0 / (k + rank)

    fused = [
        ScoredChunk(
            chunk=chunks[cid],
            score=score,
            vector_rank=vector_ranks.get(cid),
            keyword_rank=keyword_ranks.get(cid),
        )
        for cid, score in scores.items()
    ]
    fused.sort(key=lambda sc: (
        -sc.score,
        sc.vector_rank if sc.vector_rank is not None else math.inf,
        sc.keyword_rank if sc.keyword_rank is not None else math.inf,
    ))
    return fused


class HybridRetriever:
    """Runs both stores concurrently and fuses their rankings."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        vector_store: VectorStoreBase,
        keyword_store: KeywordStoreBase,
        config: RetrievalConfig | None = None,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.keyword_store = keyword_store
        self.config = config or RetrievalConfig()

    def retrieve(self, query: str, max_results: int | None = None) -> list[ScoredChunk]:
        if not query.strip():
            return []

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="prag-search") as pool:
            vector_future = pool.submit(self._vector_search, query)
            keyword_future = pool.submit(self._keyword_search, query)
            vector_hits = vector_future.result()
            keyword_hits = keyword_future.result()

        fused = reciprocal_rank_fusion(vector_hits, keyword_hits, self.config.rank_fusion_constant)
        limit = max_results if max_results is not None else self.config.hybrid_max_results
        logger.debug(
            "Hybrid search: %d vector, %d keyword, %d fused",
            len(vector_hits), len(keyword_hits), len(fused),
        )
        return fused[:limit]

    def _vector_search(self, query: str) -> list[SearchHit]:
        try:
            embedding = self.embedder.embed_query(query)
            return self.vector_store.query(
                embedding,
                limit=self.config.vector_search_max_results,
                min_score=self.config.vector_search_min_score,
            )
        except Exception as e:
            logger.warning("Vector search failed: %s", e, exc_info=True)
            return []

    def _keyword_search(self, query: str) -> list[SearchHit]:
        try:
            return self.keyword_store.search(query, limit=self.config.keyword_search_max_results)
        except Exception as e:
            logger.warning("Keyword search failed: %s", e, exc_info=True)
            return []
