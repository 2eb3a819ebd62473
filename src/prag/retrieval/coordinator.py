"""Gate first, then retrieve."""

import logging

from ..models import ChatMessage, RetrievalResult
from .hybrid import HybridRetriever
from .intent import IntentGate

logger = logging.getLogger(__name__)


class RetrievalCoordinator:
    """Runs the intent gate and, when it says yes, the hybrid retriever.

    Without a gate every message is retrieved for.
    """

    def __init__(self, retriever: HybridRetriever, gate: IntentGate | None = None):
        self.retriever = retriever
        self.gate = gate

    def retrieve(
        self,
        query: str,
        history: list[ChatMessage] | None = None,
        max_results: int | None = None,
    ) -> RetrievalResult:
        if self.gate is not None and not self.gate.should_retrieve(query, history):
            logger.debug("Retrieval skipped for message")
            return RetrievalResult.skipped()

        chunks = self.retriever.retrieve(query, max_results=max_results)
        return RetrievalResult(chunks=tuple(chunks), retrieved=True)
