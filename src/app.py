"""Application entry point for the telerecall bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters import reply_formatting as fmt
from adapters.commands import CommandDispatcher, route_message
from adapters.ollama_embedder import OllamaEmbedder
from adapters.sqlite_storage import SQLiteStorage
from client import bot_token, build_client
from core.errors import EmbeddingError, TelerecallError
from core.monitor import PerformanceMonitor
from core.processor import MessageIngestor
from core.search import SimilaritySearchEngine

NAME = "TELERECALL"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt_string = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt_string, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/telerecall.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


@dataclass
class _Services:
    storage: SQLiteStorage
    embedder: OllamaEmbedder
    monitor: PerformanceMonitor
    engine: SimilaritySearchEngine


def _build_services() -> _Services:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    logging.getLogger(__name__).info("Database initialized at %s", settings.DB_PATH)

    embedder = OllamaEmbedder(settings.EMBEDDING)
    monitor = PerformanceMonitor(settings.MONITOR.window_size)
    engine = SimilaritySearchEngine(
        storage=storage,
        embedder=embedder,
        max_results=settings.SEARCH.max_results,
        monitor=monitor,
    )
    return _Services(storage=storage, embedder=embedder, monitor=monitor, engine=engine)


async def _probe_embedder(embedder: OllamaEmbedder) -> None:
    """Startup diagnostic; never blocks or aborts the bot."""

    logger = logging.getLogger(__name__)
    try:
        await asyncio.to_thread(embedder.test_connection)
    except EmbeddingError as exc:
        logger.warning("Embedding service connection failed: %s", exc)
        logger.warning("Make sure Ollama is running (ollama serve) and the model is pulled (ollama pull %s)", embedder.model)
        return
    logger.info("Embedding service connected successfully")


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting telerecall")
    services = _build_services()
    logger.info(
        "Embedding model %s at %s, max search results %s",
        settings.EMBEDDING.model,
        settings.EMBEDDING.api_url,
        settings.SEARCH.max_results,
    )

    ingestor = MessageIngestor(
        storage=services.storage,
        embedder=services.embedder,
        monitor=services.monitor,
        max_workers=settings.SEARCH.ingestion_workers,
    )
    dispatcher = CommandDispatcher(services.engine, services.embedder, services.monitor)

    client = build_client()
    token = bot_token()

    @client.on(events.NewMessage(incoming=True))
    async def handler(event) -> None:
        try:
            reply = await route_message(event.message, ingestor, dispatcher)
            if reply is not None:
                await event.reply(reply, parse_mode="md")
                logger.info("Command executed in chat %s", event.chat_id)
        except Exception:
            logger.exception("Error while processing update")

    # Edited messages are ingested like new ones; edited commands are not re-run.
    @client.on(events.MessageEdited(incoming=True))
    async def edit_handler(event) -> None:
        try:
            await route_message(event.message, ingestor, dispatcher, commands=False)
        except Exception:
            logger.exception("Error while processing edited message")

    # Explicit lifecycle management makes start/shutdown behavior obvious.
    client.start(bot_token=token)
    loop = client.loop
    stop_event = asyncio.Event()
    reporter = loop.create_task(
        services.monitor.run_reporter(settings.MONITOR.report_interval_seconds, stop_event)
    )
    loop.create_task(_probe_embedder(services.embedder))

    try:
        loop.add_signal_handler(signal.SIGTERM, lambda: loop.create_task(client.disconnect()))
    except NotImplementedError:
        pass

    logger.info("Bot connected. Listening for messages and commands...")
    try:
        client.run_until_disconnected()
    finally:
        # The reporter and the ingestion pool share the client's lifetime.
        stop_event.set()
        loop.run_until_complete(reporter)
        ingestor.close(wait=False)
        logger.info("telerecall stopped")


def _check() -> None:
    _configure_logging()
    embedder = OllamaEmbedder(settings.EMBEDDING)
    try:
        embedder.test_connection()
        models = embedder.model_info()
    except TelerecallError as exc:
        print(f"Embedding service check failed: {exc}")
        raise SystemExit(1)
    print(f"Embedding service at {embedder.base_url} is reachable (model {embedder.model}).")
    print(models)


def _search(chat_id: int, query: str) -> None:
    _configure_logging()
    services = _build_services()
    try:
        results = services.engine.search(query, chat_id)
    except TelerecallError as exc:
        print(f"Search failed: {exc}")
        raise SystemExit(1)
    if not results:
        print("No matching messages found.")
        return
    for result in results:
        message = result.message
        print(
            f"{result.rank}. [{result.similarity * 100:.0f}%] #{message.id} "
            f"{fmt.display_name(message.username)}: {fmt.truncate_text(message.text)}"
        )


def _stats(chat_id: int) -> None:
    _configure_logging()
    services = _build_services()
    stats = services.engine.search_stats(chat_id)
    print(f"Chat {chat_id}: {stats.total_messages} messages, {stats.embedded_messages} searchable")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="telerecall")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the bot")
    subparsers.add_parser("check", help="Test the embedding service connection")

    search_parser = subparsers.add_parser("search", help="Search the local database")
    search_parser.add_argument("--chat-id", type=int, required=True)
    search_parser.add_argument("query", nargs="+")

    stats_parser = subparsers.add_parser("stats", help="Show message counts for a chat")
    stats_parser.add_argument("--chat-id", type=int, required=True)

    args = parser.parse_args(argv)
    if args.command == "check":
        _check()
        return
    if args.command == "search":
        _search(args.chat_id, " ".join(args.query))
        return
    if args.command == "stats":
        _stats(args.chat_id)
        return
    _run()


if __name__ == "__main__":
    main()
