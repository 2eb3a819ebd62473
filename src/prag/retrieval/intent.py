"""Decide per message whether retrieval is worth running."""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from ..config import IntentConfig
from ..llm.claude import ClassificationProvider
from ..models import ChatMessage
from .prompts import INTENT_CLASSIFICATION_PROMPT, NO_HISTORY

logger = logging.getLogger(__name__)

_ROLE_LABELS = {"user": "User", "assistant": "AI"}


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def parse_decision(response: str) -> bool:
    """Only an explicit NO skips retrieval."""
    answer = response.strip().strip(".\"'").strip().upper()
    return answer != "NO"


class IntentGate:
    """Classifies messages with a cheap model call. Fails open."""

    def __init__(self, classifier: ClassificationProvider, config: IntentConfig | None = None):
        self.classifier = classifier
        self.config = config or IntentConfig()
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="prag-intent")

    def build_prompt(self, message: str, history: list[ChatMessage] | None = None) -> str:
        turns = [m for m in history or [] if m.role != "system"]
        if self.config.history_turns:
            turns = turns[-self.config.history_turns:]
        else:
            turns = []

        if turns:
            context = "\n".join(
                f"{_ROLE_LABELS.get(m.role, m.role)}: {_truncate(m.content, self.config.max_history_chars)}"
                for m in turns
            )
        else:
            context = NO_HISTORY

        return INTENT_CLASSIFICATION_PROMPT.format(
            history=context,
            message=_truncate(message, self.config.max_message_chars),
        )

    def should_retrieve(self, message: str, history: list[ChatMessage] | None = None) -> bool:
        if not self.config.enabled:
            return True

        prompt = self.build_prompt(message, history)
        future = self._pool.submit(self.classifier.complete, prompt)
        try:
            response = future.result(timeout=self.config.timeout_seconds)
        except FutureTimeout:
            future.cancel()
            logger.warning(
                "Intent classification timed out after %.1fs, retrieving anyway",
                self.config.timeout_seconds,
            )
            return True
        except Exception as e:
            logger.warning("Intent classification failed: %s. Retrieving anyway", e, exc_info=True)
            return True

        decision = parse_decision(response)
        logger.debug("Intent classification: %s (response: %r)", "retrieve" if decision else "skip", response)
        return decision

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
