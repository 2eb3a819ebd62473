"""Shared fixtures: offline providers and temporary settings."""

import hashlib
import re
import threading
import time

import numpy as np
import pytest

from prag.config import ChunkingConfig, IntentConfig, Settings, RetrievalConfig

DIM = 256


class HashingEmbedder:
    """Bag-of-words vectors from hashed tokens. Deterministic and offline."""

    def __init__(self):
        self.calls = 0
        self._lock = threading.Lock()

    def _vector(self, text: str) -> list[float]:
        vec = np.zeros(DIM)
        for token in re.findall(r"\w+", text.lower()):
            vec[int(hashlib.md5(token.encode()).hexdigest(), 16) % DIM] += 1.0
        norm = np.linalg.norm(vec)
        if norm:
            vec /= norm
        return vec.tolist()

    def embed(self, text: str) -> list[float]:
        with self._lock:
            self.calls += 1
        return self._vector(text)

    def embed_query(self, text: str) -> list[float]:
        return self._vector(text)


class ScriptedCompleter:
    """Returns a fixed answer, optionally after a delay or by raising."""

    def __init__(self, answer="YES", delay=0.0, error=None):
        self.answer = answer
        self.delay = delay
        self.error = error
        self.prompts = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return self.answer


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_path=tmp_path / "data",
        chunking=ChunkingConfig(max_chars_per_chunk=1000, chunk_overlap=100),
        retrieval=RetrievalConfig(vector_search_min_score=0.05),
        intent=IntentConfig(timeout_seconds=0.5),
    )
