"""Tests for rank fusion, hybrid retrieval, intent gating and the coordinator."""

import time

import pytest
from conftest import ScriptedCompleter

from prag.config import IntentConfig, RetrievalConfig
from prag.models import ChatMessage, Chunk, RetrievalResult, SearchHit
from prag.retrieval.coordinator import RetrievalCoordinator
from prag.retrieval.hybrid import HybridRetriever, reciprocal_rank_fusion
from prag.retrieval.intent import IntentGate, parse_decision


def _hit(name, score=1.0):
    return SearchHit(
        chunk=Chunk(text=name, file_path=f"{name}.md", file_name=f"{name}.md", extension="md", chunk_index=0, project_id="p"),
        score=score,
    )


class FakeVectorStore:
    def __init__(self, hits=None, error=None):
        self.hits = hits or []
        self.error = error
        self.calls = []

    def query(self, embedding, limit=10, min_score=0.0):
        self.calls.append((limit, min_score))
        if self.error:
            raise self.error
        return self.hits[:limit]


class FakeKeywordStore:
    def __init__(self, hits=None, error=None):
        self.hits = hits or []
        self.error = error
        self.calls = []

    def search(self, query, limit=10):
        self.calls.append(limit)
        if self.error:
            raise self.error
        return self.hits[:limit]


# -- fusion ------------------------------------------------------------------


def test_rrf_scores():
    fused = reciprocal_rank_fusion([_hit("a"), _hit("b")], [_hit("b")], k=60)
    by_name = {sc.text: sc for sc in fused}
    assert by_name["a"].score == pytest.approx(1 / 61)
    assert by_name["b"].score == pytest.approx(1 / 62 + 1 / 61)
    assert by_name["b"].vector_rank == 2
    assert by_name["b"].keyword_rank == 1
    assert by_name["a"].keyword_rank is None


def test_rrf_monotonic_in_rank():
    hits = [_hit(str(i)) for i in range(10)]
    fused = reciprocal_rank_fusion(hits, [], k=60)
    scores = [sc.score for sc in fused]
    assert scores == sorted(scores, reverse=True)
    assert [sc.text for sc in fused] == [str(i) for i in range(10)]


def test_item_in_both_lists_beats_single_list_item():
    # "both" sits at ranks 3 and 4; "solo" at rank 1 of the keyword list only
    vector = [_hit("v1"), _hit("v2"), _hit("both")]
    keyword = [_hit("solo"), _hit("k2"), _hit("k3"), _hit("both")]
    fused = reciprocal_rank_fusion(vector, keyword, k=60)
    names = [sc.text for sc in fused]
    assert names.index("both") < names.index("solo")


def test_rrf_ties_prefer_vector_rank():
    fused = reciprocal_rank_fusion([_hit("v")], [_hit("k")], k=60)
    assert [sc.text for sc in fused] == ["v", "k"]


def test_rrf_duplicate_in_one_list_counts_once():
    fused = reciprocal_rank_fusion([_hit("a"), _hit("a")], [], k=60)
    assert len(fused) == 1
    assert fused[0].score == pytest.approx(1 / 61)


# -- hybrid ------------------------------------------------------------------


def test_hybrid_merges_both_sources(embedder):
    vector = FakeVectorStore([_hit("semantic"), _hit("shared")])
    keyword = FakeKeywordStore([_hit("shared"), _hit("lexical")])
    retriever = HybridRetriever(embedder, vector, keyword, RetrievalConfig())
    results = retriever.retrieve("query")
    names = [sc.text for sc in results]
    assert names[0] == "shared"
    assert set(names) == {"semantic", "shared", "lexical"}


def test_hybrid_passes_limits(embedder):
    vector = FakeVectorStore()
    keyword = FakeKeywordStore()
    config = RetrievalConfig(vector_search_max_results=7, vector_search_min_score=0.4, keyword_search_max_results=3)
    HybridRetriever(embedder, vector, keyword, config).retrieve("query")
    assert vector.calls == [(7, 0.4)]
    assert keyword.calls == [3]


def test_hybrid_truncates(embedder):
    vector = FakeVectorStore([_hit(f"v{i}") for i in range(10)])
    keyword = FakeKeywordStore([_hit(f"k{i}") for i in range(10)])
    retriever = HybridRetriever(embedder, vector, keyword, RetrievalConfig(hybrid_max_results=4))
    assert len(retriever.retrieve("query")) == 4
    assert len(retriever.retrieve("query", max_results=2)) == 2


def test_hybrid_survives_one_failing_store(embedder):
    vector = FakeVectorStore(error=RuntimeError("index corrupted"))
    keyword = FakeKeywordStore([_hit("lexical")])
    results = HybridRetriever(embedder, vector, keyword).retrieve("query")
    assert [sc.text for sc in results] == ["lexical"]


def test_hybrid_blank_query(embedder):
    vector = FakeVectorStore([_hit("a")])
    assert HybridRetriever(embedder, vector, FakeKeywordStore()).retrieve("   ") == []
    assert vector.calls == []


# -- intent gate -------------------------------------------------------------


@pytest.mark.parametrize("answer,expected", [
    ("YES", True),
    ("no", False),
    (" No. ", False),
    ('"NO"', False),
    ("Maybe", True),
    ("", True),
    ("NO, because", True),
])
def test_parse_decision(answer, expected):
    assert parse_decision(answer) is expected


def test_gate_negative():
    gate = IntentGate(ScriptedCompleter("NO"), IntentConfig())
    assert gate.should_retrieve("thanks!") is False


def test_gate_fails_open_on_error():
    gate = IntentGate(ScriptedCompleter(error=RuntimeError("api down")), IntentConfig())
    assert gate.should_retrieve("what is the build command?") is True


def test_gate_fails_open_on_timeout():
    gate = IntentGate(ScriptedCompleter("NO", delay=1.0), IntentConfig(timeout_seconds=0.05))
    start = time.monotonic()
    assert gate.should_retrieve("hello") is True
    assert time.monotonic() - start < 0.9
    gate.close()


def test_gate_disabled_skips_classifier():
    completer = ScriptedCompleter("NO")
    gate = IntentGate(completer, IntentConfig(enabled=False))
    assert gate.should_retrieve("hello") is True
    assert completer.prompts == []


def test_prompt_history_window_and_truncation():
    completer = ScriptedCompleter("YES")
    gate = IntentGate(completer, IntentConfig(history_turns=2, max_history_chars=10))
    history = [
        ChatMessage("user", "first question"),
        ChatMessage("system", "you are helpful"),
        ChatMessage("assistant", "a very long answer that goes on"),
        ChatMessage("user", "short"),
    ]
    gate.should_retrieve("current message", history)
    prompt = completer.prompts[0]
    assert "first question" not in prompt
    assert "you are helpful" not in prompt
    assert "AI: a very lon..." in prompt
    assert "User: short" in prompt
    assert 'Current message: "current message"' in prompt


def test_prompt_without_history():
    prompt = IntentGate(ScriptedCompleter(), IntentConfig()).build_prompt("hi")
    assert "No previous conversation" in prompt


# -- coordinator -------------------------------------------------------------


def test_coordinator_skips_stores_when_gate_says_no(embedder):
    vector = FakeVectorStore([_hit("a")])
    keyword = FakeKeywordStore([_hit("a")])
    coordinator = RetrievalCoordinator(
        HybridRetriever(embedder, vector, keyword),
        IntentGate(ScriptedCompleter("NO"), IntentConfig()),
    )
    result = coordinator.retrieve("thanks")
    assert isinstance(result, RetrievalResult)
    assert result.retrieved is False
    assert len(result) == 0
    assert vector.calls == [] and keyword.calls == []


def test_coordinator_retrieves_when_gate_says_yes(embedder):
    coordinator = RetrievalCoordinator(
        HybridRetriever(embedder, FakeVectorStore([_hit("a")]), FakeKeywordStore([_hit("b")])),
        IntentGate(ScriptedCompleter("YES"), IntentConfig()),
    )
    result = coordinator.retrieve("how do I build?")
    assert result.retrieved
    assert [sc.text for sc in result] == ["a", "b"]
    assert "[1] a.md:\na" in result.as_context()


def test_coordinator_without_gate_always_retrieves(embedder):
    coordinator = RetrievalCoordinator(HybridRetriever(embedder, FakeVectorStore([_hit("a")]), FakeKeywordStore()))
    assert len(coordinator.retrieve("anything")) == 1
