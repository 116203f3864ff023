from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional, Sequence

import pytest

from core.errors import (
    MissingEmbeddingError,
    SearchError,
    SourceMessageNotFound,
    ValidationError,
)
from core.models import ChatMessage
from core.monitor import PerformanceMonitor
from core.search import SimilaritySearchEngine

from fakes import FakeEmbedder, FakeStorage

QUERY = "when is the meeting"
QUERY_VECTOR = (1.0, 0.0)


def _vector_with_similarity(similarity: float) -> tuple[float, float]:
    """Unit vector whose cosine with QUERY_VECTOR equals ``similarity``."""

    return (similarity, math.sqrt(1 - similarity * similarity))


def _store(
    storage: FakeStorage,
    text: str,
    *,
    chat_id: int = 42,
    embedding: Optional[Sequence[float]] = None,
) -> int:
    return storage.save(
        ChatMessage(
            chat_id=chat_id,
            user_id=7,
            username="alice",
            text=text,
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            embedding=tuple(embedding) if embedding is not None else None,
        )
    )


def _engine(storage: FakeStorage, max_results: int = 3, monitor=None) -> tuple[SimilaritySearchEngine, FakeEmbedder]:
    embedder = FakeEmbedder({QUERY: QUERY_VECTOR})
    engine = SimilaritySearchEngine(storage, embedder, max_results=max_results, monitor=monitor)
    return engine, embedder


def test_search_filters_low_similarity_and_ranks() -> None:
    storage = FakeStorage()
    _store(storage, "unrelated chatter", embedding=_vector_with_similarity(0.05))
    _store(storage, "meeting is on monday", embedding=_vector_with_similarity(0.9))
    _store(storage, "not embedded yet")
    _store(storage, "calendar stuff", embedding=_vector_with_similarity(0.4))
    _store(storage, "still pending")
    engine, _ = _engine(storage)

    results = engine.search(QUERY, 42)

    assert [r.rank for r in results] == [1, 2]
    assert [r.message.text for r in results] == ["meeting is on monday", "calendar stuff"]
    assert results[0].similarity == pytest.approx(0.9)
    assert results[1].similarity == pytest.approx(0.4)


def test_search_truncates_to_max_results() -> None:
    storage = FakeStorage()
    for index, similarity in enumerate([0.2, 0.8, 0.5, 0.95, 0.6]):
        _store(storage, f"message {index}", embedding=_vector_with_similarity(similarity))
    engine, _ = _engine(storage, max_results=3)

    results = engine.search(QUERY, 42)

    assert len(results) == 3
    assert [r.rank for r in results] == [1, 2, 3]
    similarities = [r.similarity for r in results]
    assert similarities == sorted(similarities, reverse=True)
    assert similarities[0] == pytest.approx(0.95)


def test_ties_are_ordered_by_message_id_and_repeatable() -> None:
    storage = FakeStorage()
    ids = [_store(storage, f"same {i}", embedding=_vector_with_similarity(0.7)) for i in range(4)]
    engine, _ = _engine(storage, max_results=3)

    first = engine.search(QUERY, 42)
    second = engine.search(QUERY, 42)

    assert [r.message.id for r in first] == ids[:3]
    assert first == second


def test_search_is_scoped_to_one_chat() -> None:
    storage = FakeStorage()
    _store(storage, "other chat", chat_id=99, embedding=_vector_with_similarity(0.99))
    _store(storage, "this chat", chat_id=42, embedding=_vector_with_similarity(0.5))
    engine, _ = _engine(storage)

    results = engine.search(QUERY, 42)

    assert [r.message.chat_id for r in results] == [42]


def test_empty_corpus_returns_empty_list() -> None:
    storage = FakeStorage()
    _store(storage, "no vector here")
    engine, _ = _engine(storage)

    assert engine.search(QUERY, 42) == []


def test_mismatched_dimensions_are_never_returned() -> None:
    storage = FakeStorage()
    _store(storage, "three dims", embedding=(1.0, 0.0, 0.0))
    engine, _ = _engine(storage)

    assert engine.search(QUERY, 42) == []


@pytest.mark.parametrize("query", ["", "   ", "\n\t"])
def test_blank_query_fails_without_calling_provider(query: str) -> None:
    engine, embedder = _engine(FakeStorage())

    with pytest.raises(ValidationError):
        engine.search(query, 42)
    assert embedder.calls == []


def test_embedding_failure_is_wrapped_as_search_error() -> None:
    storage = FakeStorage()
    _store(storage, "anything", embedding=_vector_with_similarity(0.9))
    engine, _ = _engine(storage)

    with pytest.raises(SearchError, match="failed to generate query embedding") as excinfo:
        engine.search("a query the provider cannot embed", 42)
    assert "connection refused" in str(excinfo.value.__cause__)


def test_store_failure_is_wrapped_as_search_error() -> None:
    class BrokenStorage(FakeStorage):
        def get_messages_with_embeddings(self, chat_id: int):
            raise RuntimeError("disk I/O error")

    engine, _ = _engine(BrokenStorage())

    with pytest.raises(SearchError, match="failed to retrieve messages"):
        engine.search(QUERY, 42)


def test_search_latency_is_recorded_on_success_and_failure() -> None:
    storage = FakeStorage()
    monitor = PerformanceMonitor()
    engine, _ = _engine(storage, monitor=monitor)

    engine.search(QUERY, 42)
    with pytest.raises(SearchError):
        engine.search("unknown", 42)

    assert monitor.snapshot().search_samples == 2


def test_search_stats_reflect_store_at_call_time() -> None:
    storage = FakeStorage()
    _store(storage, "embedded", embedding=_vector_with_similarity(0.5))
    _store(storage, "plain")
    engine, _ = _engine(storage)

    stats = engine.search_stats(42)
    assert (stats.total_messages, stats.embedded_messages) == (2, 1)

    _store(storage, "another", embedding=_vector_with_similarity(0.5))
    stats = engine.search_stats(42)
    assert (stats.total_messages, stats.embedded_messages) == (3, 2)
    assert stats.readiness == pytest.approx(2 / 3)


def test_similar_to_excludes_source_and_uses_stricter_floor() -> None:
    storage = FakeStorage()
    source_id = _store(storage, "source", embedding=QUERY_VECTOR)
    _store(storage, "close", embedding=_vector_with_similarity(0.8))
    _store(storage, "weak", embedding=_vector_with_similarity(0.25))
    _store(storage, "closer", embedding=_vector_with_similarity(0.9))
    engine, embedder = _engine(storage, max_results=1)

    results = engine.similar_to(source_id, 42)

    assert [r.message.text for r in results] == ["closer", "close"]
    assert [r.rank for r in results] == [1, 2]
    assert embedder.calls == []


def test_similar_to_caps_at_three_regardless_of_search_config() -> None:
    storage = FakeStorage()
    source_id = _store(storage, "source", embedding=QUERY_VECTOR)
    for i in range(5):
        _store(storage, f"neighbour {i}", embedding=_vector_with_similarity(0.5 + i / 10))
    engine, _ = _engine(storage, max_results=10)

    assert len(engine.similar_to(source_id, 42)) == 3


def test_similar_to_without_embedding_fails() -> None:
    storage = FakeStorage()
    source_id = _store(storage, "pending message")
    _store(storage, "other", embedding=QUERY_VECTOR)
    engine, _ = _engine(storage)

    with pytest.raises(MissingEmbeddingError, match="no embedding"):
        engine.similar_to(source_id, 42)


def test_similar_to_unknown_or_foreign_message_fails() -> None:
    storage = FakeStorage()
    foreign_id = _store(storage, "elsewhere", chat_id=99, embedding=QUERY_VECTOR)
    engine, _ = _engine(storage)

    with pytest.raises(SourceMessageNotFound):
        engine.similar_to(12345, 42)
    with pytest.raises(SourceMessageNotFound):
        engine.similar_to(foreign_id, 42)


def test_similar_to_wraps_source_lookup_failure() -> None:
    class BrokenStorage(FakeStorage):
        def get_by_ids(self, ids):
            raise RuntimeError("database is locked")

    engine, _ = _engine(BrokenStorage())

    with pytest.raises(SearchError, match="failed to retrieve source message") as excinfo:
        engine.similar_to(1, 42)
    assert "database is locked" in str(excinfo.value.__cause__)
