"""Core message ingestion pipeline.

This module is integration-agnostic. It only relies on ports for storage and
embeddings, enabling other transports or backends without changes here.

The pipeline enforces a strict order:
1) Clean the raw text
2) Fast-exit for noise (fewer than three visible characters)
3) Hand the message to a worker pool and return immediately
4) In the worker: embed, record latency, persist once (with or without vector)
"""

from __future__ import annotations

import dataclasses
import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional

from core.cleaning import clean_text, is_meaningful
from core.errors import EmbeddingError
from core.models import ChatMessage, InboundMessage
from core.monitor import PerformanceMonitor
from core.ports import EmbedderPort, StoragePort

LOGGER = logging.getLogger(__name__)


def _log_job_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.error("Ingestion job failed", exc_info=exc)


class MessageIngestor:
    """Cleans inbound messages and enriches them with embeddings in the background."""

    def __init__(
        self,
        storage: StoragePort,
        embedder: EmbedderPort,
        monitor: PerformanceMonitor,
        executor: Optional[Executor] = None,
        max_workers: int = 4,
    ) -> None:
        self._storage = storage
        self._embedder = embedder
        self._monitor = monitor
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="ingest",
        )

    def handle(self, inbound: InboundMessage) -> None:
        """Schedule one inbound message for embedding and storage.

        Returns as soon as the job is queued; the caller never waits on the
        provider. Completion is only visible through the store and the monitor.
        """

        text = clean_text(inbound.text)
        if not is_meaningful(text):
            return

        message = ChatMessage(
            chat_id=inbound.chat_id,
            user_id=inbound.user_id,
            username=inbound.username or "",
            text=text,
            timestamp=datetime.fromtimestamp(inbound.date, tz=timezone.utc),
        )
        future = self._executor.submit(self._embed_and_store, message)
        future.add_done_callback(_log_job_failure)

    def _embed_and_store(self, message: ChatMessage) -> None:
        embedding = None
        started = time.perf_counter()
        try:
            embedding = tuple(self._embedder.embed(message.text))
        except EmbeddingError as exc:
            LOGGER.warning("Failed to generate embedding for message in chat %s: %s", message.chat_id, exc)
        except Exception:
            LOGGER.exception("Unexpected embedding failure for message in chat %s", message.chat_id)
        finally:
            elapsed = time.perf_counter() - started
            self._monitor.record_embedding_time(elapsed)

        if embedding is None:
            # Not retried. Stored without a vector, so it never shows up in search.
            self._save(message)
            return

        enriched = dataclasses.replace(message, embedding=embedding)
        if self._save(enriched):
            LOGGER.info(
                "Saved message with embedding (%s dims, %.0fms) in chat %s",
                len(enriched.embedding),
                elapsed * 1000,
                message.chat_id,
            )

    def _save(self, message: ChatMessage) -> bool:
        try:
            self._storage.save(message)
        except Exception:
            LOGGER.exception("Error saving message in chat %s", message.chat_id)
            return False
        return True

    def close(self, wait: bool = True) -> None:
        """Stop accepting jobs; with ``wait=False`` queued jobs are abandoned."""

        self._executor.shutdown(wait=wait, cancel_futures=not wait)
