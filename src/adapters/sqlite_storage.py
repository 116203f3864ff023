"""SQLite storage adapter.

Implements the core StoragePort using a simple SQLite database. Embeddings
are stored as JSON arrays in a TEXT column; an empty or NULL value means the
message has no embedding.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from core.models import ChatMessage

LOGGER = logging.getLogger(__name__)

_COLUMNS = "id, chat_id, user_id, username, text, timestamp, embedding"
_HAS_EMBEDDING = "embedding IS NOT NULL AND embedding != ''"


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the StoragePort contract.

    A fresh connection is opened per call, so one instance can be shared by
    the event loop and the ingestion worker threads.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the messages table and its indexes if they do not exist."""

        with self._connect() as conn:
            # messages is append-only from the bot's point of view.
            # Fields:
            # - id: auto-increment primary key, used by /similar
            # - chat_id: Telegram chat id; every query is scoped by it
            # - user_id / username: author, username may be empty
            # - text: cleaned message body
            # - timestamp: original message time (UTC, ISO 8601)
            # - embedding: JSON array of floats, NULL or '' when missing
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    username TEXT,
                    text TEXT NOT NULL,
                    timestamp TIMESTAMP NOT NULL,
                    embedding TEXT
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_chat_id ON messages(chat_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_timestamp ON messages(timestamp)")

    def save(self, message: ChatMessage) -> int:
        """Insert a message and return its new id."""

        embedding_json = json.dumps(list(message.embedding)) if message.embedding else None
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO messages (chat_id, user_id, username, text, timestamp, embedding)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    message.chat_id,
                    message.user_id,
                    message.username,
                    message.text,
                    message.timestamp.isoformat(),
                    embedding_json,
                ),
            )
            message_id = int(cur.lastrowid)
        LOGGER.debug("Saved message %s in chat %s: %s", message_id, message.chat_id, message.text[:50])
        return message_id

    def get_stats(self, chat_id: int) -> int:
        """Return the number of stored messages for a chat."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM messages WHERE chat_id = ?",
                (chat_id,),
            ).fetchone()
        return int(row["total"])

    def get_stats_with_embeddings(self, chat_id: int) -> int:
        """Return the number of searchable messages for a chat."""

        with self._connect() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS total FROM messages WHERE chat_id = ? AND {_HAS_EMBEDDING}",
                (chat_id,),
            ).fetchone()
        return int(row["total"])

    def get_messages_with_embeddings(self, chat_id: int) -> List[ChatMessage]:
        """Return embedded messages of a chat, newest first.

        Rows whose embedding JSON cannot be parsed are skipped, not fatal.
        """

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM messages
                WHERE chat_id = ? AND {_HAS_EMBEDDING}
                ORDER BY timestamp DESC
                """,
                (chat_id,),
            ).fetchall()

        messages: List[ChatMessage] = []
        for row in rows:
            embedding = _parse_embedding(row)
            if not embedding:
                continue
            messages.append(_row_to_message(row, embedding))
        return messages

    def get_by_ids(self, ids: Iterable[int]) -> List[ChatMessage]:
        """Return the messages with the given ids, newest first."""

        id_list = list(ids)
        if not id_list:
            return []

        placeholders = ",".join("?" for _ in id_list)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM messages WHERE id IN ({placeholders}) ORDER BY timestamp DESC",
                id_list,
            ).fetchall()
        return [_row_to_message(row, _parse_embedding(row)) for row in rows]


def _parse_embedding(row: sqlite3.Row) -> Optional[Tuple[float, ...]]:
    raw = row["embedding"]
    if not raw:
        return None
    try:
        values = json.loads(raw)
        return tuple(float(value) for value in values)
    except (TypeError, ValueError) as exc:
        LOGGER.warning("Failed to decode embedding for message %s: %s", row["id"], exc)
        return None


def _row_to_message(row: sqlite3.Row, embedding: Optional[Tuple[float, ...]]) -> ChatMessage:
    timestamp = datetime.fromisoformat(row["timestamp"])
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return ChatMessage(
        id=int(row["id"]),
        chat_id=int(row["chat_id"]),
        user_id=int(row["user_id"]),
        username=row["username"] or "",
        text=row["text"],
        timestamp=timestamp,
        embedding=embedding,
    )
