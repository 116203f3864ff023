"""Bot command dispatch.

Maps ``/command args`` to core operations and returns reply text. Blocking
core calls (HTTP to the embedding provider, SQLite reads) run in worker
threads so one slow search never stalls other updates.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from adapters import reply_formatting as fmt
from adapters.telegram_mapper import build_inbound, parse_command
from core.errors import DataError, TelerecallError
from core.monitor import PerformanceMonitor
from core.processor import MessageIngestor
from core.search import SimilaritySearchEngine

LOGGER = logging.getLogger(__name__)

TEST_PHRASE = "Testing AI connection for semantic understanding"


class CommandDispatcher:
    """Handles every bot command for a single chat at a time."""

    def __init__(
        self,
        engine: SimilaritySearchEngine,
        embedder,
        monitor: PerformanceMonitor,
    ) -> None:
        self._engine = engine
        self._embedder = embedder
        self._monitor = monitor

    async def dispatch(self, chat_id: int, command: str, args: str) -> str:
        handlers = {
            "start": self._start,
            "help": self._help,
            "stats": self._stats,
            "test": self._test,
            "perf": self._perf,
            "search": self._search,
            "similar": self._similar,
        }
        handler = handlers.get(command)
        if handler is None:
            return f"Unknown command: /{command}"
        return await handler(chat_id, args)

    async def _start(self, chat_id: int, args: str) -> str:
        return fmt.START_TEXT

    async def _help(self, chat_id: int, args: str) -> str:
        return fmt.HELP_TEXT

    async def _stats(self, chat_id: int, args: str) -> str:
        try:
            stats = await asyncio.to_thread(self._engine.search_stats, chat_id)
        except Exception:
            LOGGER.exception("Error getting stats for chat %s", chat_id)
            return "I could not retrieve the statistics right now. Please try again."
        return fmt.format_stats(stats, self._embedder.model, chat_id)

    async def _test(self, chat_id: int, args: str) -> str:
        started = time.perf_counter()
        try:
            embedding = await asyncio.to_thread(self._embedder.embed, TEST_PHRASE)
        except TelerecallError as exc:
            LOGGER.warning("Embedding test failed: %s", exc)
            return fmt.format_connection_failed(exc, self._embedder.model, self._embedder.base_url)
        duration = time.perf_counter() - started
        return fmt.format_connection_ok(duration, len(embedding), self._embedder.model, self._embedder.base_url)

    async def _perf(self, chat_id: int, args: str) -> str:
        snapshot = await asyncio.to_thread(self._monitor.snapshot)
        return fmt.format_perf(snapshot)

    async def _search(self, chat_id: int, query: str) -> str:
        if not query.strip():
            return fmt.SEARCH_USAGE_TEXT

        started = time.perf_counter()
        try:
            results = await asyncio.to_thread(self._engine.search, query, chat_id)
        except TelerecallError as exc:
            LOGGER.warning("Search error in chat %s: %s", chat_id, exc)
            return fmt.format_search_error(exc)
        duration = time.perf_counter() - started

        if not results:
            try:
                stats = await asyncio.to_thread(self._engine.search_stats, chat_id)
            except Exception:
                LOGGER.exception("Error getting stats for chat %s", chat_id)
                return fmt.format_no_results(query, None)
            return fmt.format_no_results(query, stats)

        LOGGER.info(
            "Search completed: results=%s, duration=%.0fms, chat=%s",
            len(results),
            duration * 1000,
            chat_id,
        )
        return fmt.format_search_results(query, results, duration)

    async def _similar(self, chat_id: int, args: str) -> str:
        try:
            message_id = int(args.strip())
        except ValueError:
            return fmt.SIMILAR_USAGE_TEXT

        try:
            results = await asyncio.to_thread(self._engine.similar_to, message_id, chat_id)
        except DataError as exc:
            return f"Cannot look up similar messages: {fmt.escape_md(str(exc))}"
        except TelerecallError as exc:
            LOGGER.warning("Similar lookup error in chat %s: %s", chat_id, exc)
            return fmt.format_search_error(exc)
        return fmt.format_similar_results(message_id, results)


async def route_message(message, ingestor: MessageIngestor, dispatcher: CommandDispatcher, *, commands: bool = True) -> Optional[str]:
    """Ingest plain text or run a command; return the reply to send, if any.

    With ``commands=False`` (edited messages) command text is ignored, so an
    edited ``/search`` is not answered twice.
    """

    text = message.raw_text or ""
    if not text:
        return None
    parsed = parse_command(text)
    if parsed is None:
        ingestor.handle(await build_inbound(message))
        return None
    if not commands:
        return None
    command, args = parsed
    return await dispatcher.dispatch(message.chat_id, command, args)
