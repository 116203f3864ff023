"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage and embedding adapters so
that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence

from core.models import ChatMessage


class StoragePort(Protocol):
    """Storage operations required by ingestion and search.

    Every method must tolerate concurrent calls from worker threads.
    """

    def save(self, message: ChatMessage) -> int:
        ...

    def get_stats(self, chat_id: int) -> int:
        ...

    def get_stats_with_embeddings(self, chat_id: int) -> int:
        ...

    def get_messages_with_embeddings(self, chat_id: int) -> list[ChatMessage]:
        ...

    def get_by_ids(self, ids: Iterable[int]) -> list[ChatMessage]:
        ...


class EmbedderPort(Protocol):
    """Embedding operations required by ingestion and search."""

    def embed(self, text: str) -> Sequence[float]:
        ...

    def test_connection(self) -> None:
        ...
