"""Similarity search over a chat's embedded messages.

Search is a linear scan: every embedded message of the chat is scored against
the query vector, weak matches are dropped, and the rest are ranked. Messages
whose embedding has not been written yet are invisible to search.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, List, Optional, Sequence

from core.errors import (
    EmbeddingError,
    MissingEmbeddingError,
    SearchError,
    SourceMessageNotFound,
    ValidationError,
)
from core.models import ChatMessage, CorpusStats, SearchResult
from core.monitor import PerformanceMonitor
from core.ports import EmbedderPort, StoragePort
from core.similarity import cosine_similarity

LOGGER = logging.getLogger(__name__)

SEARCH_MIN_SIMILARITY = 0.1
SIMILAR_MIN_SIMILARITY = 0.3
SIMILAR_MAX_RESULTS = 3


def rank_candidates(
    target: Sequence[float],
    candidates: Iterable[ChatMessage],
    *,
    min_similarity: float,
    limit: int,
) -> List[SearchResult]:
    """Score, filter, sort and truncate candidates, then assign 1-based ranks.

    Equal similarities are ordered by message id so repeated calls over an
    unchanged corpus return the same list.
    """

    scored = []
    for message in candidates:
        if not message.embedding:
            continue
        similarity = cosine_similarity(target, message.embedding)
        if similarity > min_similarity:
            scored.append((similarity, message))

    scored.sort(key=lambda item: (-item[0], item[1].id if item[1].id is not None else 0))
    return [
        SearchResult(message=message, similarity=similarity, rank=rank)
        for rank, (similarity, message) in enumerate(scored[:limit], start=1)
    ]


class SimilaritySearchEngine:
    """Embed a query and rank a chat's stored messages by cosine similarity."""

    def __init__(
        self,
        storage: StoragePort,
        embedder: EmbedderPort,
        max_results: int = 3,
        monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        if max_results < 1:
            raise ValueError("max_results must be at least 1")
        self._storage = storage
        self._embedder = embedder
        self._max_results = max_results
        self._monitor = monitor

    def search(self, query: str, chat_id: int) -> List[SearchResult]:
        """Return up to ``max_results`` ranked hits for ``query`` within one chat."""

        if not query.strip():
            raise ValidationError("search query cannot be empty")

        started = time.perf_counter()
        try:
            return self._search(query, chat_id)
        finally:
            if self._monitor is not None:
                self._monitor.record_search_time(time.perf_counter() - started)

    def _search(self, query: str, chat_id: int) -> List[SearchResult]:
        try:
            query_embedding = self._embedder.embed(query)
        except EmbeddingError as exc:
            raise SearchError(f"failed to generate query embedding: {exc}") from exc

        candidates = self._load_corpus(chat_id)
        if not candidates:
            return []

        results = rank_candidates(
            query_embedding,
            candidates,
            min_similarity=SEARCH_MIN_SIMILARITY,
            limit=self._max_results,
        )
        LOGGER.debug(
            "Search in chat %s scanned %s messages, returned %s",
            chat_id,
            len(candidates),
            len(results),
        )
        return results

    def search_stats(self, chat_id: int) -> CorpusStats:
        """Return total and embedded message counts for the chat, uncached."""

        return CorpusStats(
            total_messages=self._storage.get_stats(chat_id),
            embedded_messages=self._storage.get_stats_with_embeddings(chat_id),
        )

    def similar_to(self, message_id: int, chat_id: int) -> List[SearchResult]:
        """Rank other messages of the chat against an already stored message."""

        try:
            stored = self._storage.get_by_ids([message_id])
        except Exception as exc:
            raise SearchError(f"failed to retrieve source message: {exc}") from exc

        matches = [m for m in stored if m.chat_id == chat_id]
        if not matches:
            raise SourceMessageNotFound(f"source message {message_id} not found")

        source = matches[0]
        if not source.embedding:
            raise MissingEmbeddingError(f"source message {message_id} has no embedding")

        others = [m for m in self._load_corpus(chat_id) if m.id != message_id]
        return rank_candidates(
            source.embedding,
            others,
            min_similarity=SIMILAR_MIN_SIMILARITY,
            limit=SIMILAR_MAX_RESULTS,
        )

    def _load_corpus(self, chat_id: int) -> List[ChatMessage]:
        try:
            return self._storage.get_messages_with_embeddings(chat_id)
        except Exception as exc:
            raise SearchError(f"failed to retrieve messages: {exc}") from exc
