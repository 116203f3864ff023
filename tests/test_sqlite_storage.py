from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from adapters.sqlite_storage import SQLiteStorage
from core.models import ChatMessage

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def storage(tmp_path) -> SQLiteStorage:
    store = SQLiteStorage(str(tmp_path / "messages.db"))
    store.init_db()
    return store


def _message(text: str, *, chat_id: int = 42, minutes: int = 0, embedding=None) -> ChatMessage:
    return ChatMessage(
        chat_id=chat_id,
        user_id=1,
        username="carol",
        text=text,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        embedding=embedding,
    )


def test_save_assigns_ids_and_round_trips_fields(storage: SQLiteStorage) -> None:
    first = storage.save(_message("hello world", embedding=(0.5, -0.25)))
    second = storage.save(_message("second message", minutes=1))

    assert second > first
    loaded = {m.id: m for m in storage.get_by_ids([first, second])}
    assert loaded[first].embedding == (0.5, -0.25)
    assert loaded[first].timestamp == BASE_TIME
    assert loaded[first].username == "carol"
    assert loaded[second].embedding is None


def test_counts_are_scoped_by_chat(storage: SQLiteStorage) -> None:
    storage.save(_message("with vector", embedding=(1.0,)))
    storage.save(_message("without vector"))
    storage.save(_message("other chat", chat_id=7, embedding=(1.0,)))

    assert storage.get_stats(42) == 2
    assert storage.get_stats_with_embeddings(42) == 1
    assert storage.get_stats(7) == 1
    assert storage.get_stats(1000) == 0


def test_messages_with_embeddings_newest_first(storage: SQLiteStorage) -> None:
    storage.save(_message("older", minutes=0, embedding=(1.0, 0.0)))
    storage.save(_message("newer", minutes=5, embedding=(0.0, 1.0)))
    storage.save(_message("no vector", minutes=10))
    storage.save(_message("foreign", chat_id=7, embedding=(1.0, 1.0)))

    messages = storage.get_messages_with_embeddings(42)

    assert [m.text for m in messages] == ["newer", "older"]


def test_malformed_embedding_rows_are_skipped(storage: SQLiteStorage, tmp_path, caplog) -> None:
    good_id = storage.save(_message("good", embedding=(1.0, 2.0)))
    bad_id = storage.save(_message("bad", minutes=1, embedding=(1.0,)))
    conn = sqlite3.connect(str(tmp_path / "messages.db"))
    with conn:
        conn.execute("UPDATE messages SET embedding = ? WHERE id = ?", ("[1.0, oops", bad_id))
    conn.close()

    messages = storage.get_messages_with_embeddings(42)

    assert [m.id for m in messages] == [good_id]
    assert "Failed to decode embedding" in caplog.text
    assert storage.get_by_ids([bad_id])[0].embedding is None


def test_get_by_ids_with_no_ids(storage: SQLiteStorage) -> None:
    assert storage.get_by_ids([]) == []
