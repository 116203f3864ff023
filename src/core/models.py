"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class InboundMessage:
    """Transport-neutral message as received from the chat platform."""

    chat_id: int
    user_id: int
    username: Optional[str]
    text: str
    date: int


@dataclass(frozen=True)
class ChatMessage:
    """A cleaned message, optionally carrying its embedding.

    ``id`` is assigned by the store and stays ``None`` until the message is
    persisted.
    """

    chat_id: int
    user_id: int
    username: str
    text: str
    timestamp: datetime
    embedding: Optional[Tuple[float, ...]] = None
    id: Optional[int] = None

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


@dataclass(frozen=True)
class SearchResult:
    """A ranked hit. Rank is 1-based and only meaningful within one call."""

    message: ChatMessage
    similarity: float
    rank: int


@dataclass(frozen=True)
class CorpusStats:
    """Message counts for a single chat, read live from the store."""

    total_messages: int
    embedded_messages: int

    @property
    def readiness(self) -> float:
        """Share of messages that are searchable, in [0, 1]."""

        return self.embedded_messages / max(self.total_messages, 1)


@dataclass(frozen=True)
class PerformanceSnapshot:
    """Aggregate latency stats (seconds) and process memory at read time."""

    search_avg: float
    embedding_avg: float
    search_samples: int
    embedding_samples: int
    memory_bytes: int
