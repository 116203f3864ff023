"""Shared reply formatting helpers.

The core returns plain data; everything users read in the chat is rendered
here, in Telethon's Markdown dialect (``**bold**``, ``__italic__``, backticks).
"""

from __future__ import annotations

from typing import Optional, Sequence

from core.models import CorpusStats, PerformanceSnapshot, SearchResult
from core.monitor import format_bytes

ANONYMOUS = "Anonymous"
SNIPPET_CHARS = 180
DIVIDER = "──────────────"

START_TEXT = "\n".join(
    [
        "**Welcome to telerecall!**",
        "",
        "I remember what is said in this chat and find it again by meaning, not by exact words.",
        "",
        "1. Just chat normally, I am already learning.",
        "2. When you need something: `/search your question`",
        "3. I will show the most relevant messages.",
        "",
        "Use /help for details.",
    ]
)

HELP_TEXT = "\n".join(
    [
        "**How to use semantic search**",
        "",
        "`/search <question>` find messages by meaning",
        "`/similar <message id>` find messages close to a stored one",
        "`/stats` how many messages I have learned from",
        "`/test` check the connection to the embedding service",
        "`/perf` latency and memory dashboard",
        "",
        "Natural language works best: `/search when is the team meeting`.",
        "Freshly sent messages may take a moment before they are searchable.",
    ]
)

SEARCH_USAGE_TEXT = "\n".join(
    [
        "**Semantic search**",
        "",
        "Usage: `/search <your question or keywords>`",
        "",
        "Examples:",
        "`/search meeting next week`",
        "`/search API not working`",
        "`/search restaurant recommendation`",
    ]
)

SIMILAR_USAGE_TEXT = "Usage: `/similar <message id>` (ids are shown next to search results)"


def escape_md(value: str) -> str:
    for ch in r"*[`_":
        value = value.replace(ch, f"\\{ch}")
    return value


def display_name(username: str) -> str:
    return username or ANONYMOUS


def truncate_text(text: str, limit: int = SNIPPET_CHARS) -> str:
    """Clip long messages, preferring a sentence end in the last stretch."""

    if len(text) <= limit:
        return text
    cutoff = limit
    for index in range(max(limit - 30, 0), min(len(text), limit)):
        if text[index] in ".!?":
            cutoff = index + 1
            break
    return text[:cutoff] + "..."


def format_duration(seconds: float) -> str:
    if seconds <= 0:
        return "No data yet"
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.1f}s"


def pluralize(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


def format_search_results(query: str, results: Sequence[SearchResult], duration: float) -> str:
    """Render ranked hits with match percentage, author, date and snippet."""

    lines = [
        f"**Found {len(results)} relevant {pluralize(len(results), 'message')}**",
        f"Search: \"{escape_md(query)}\" | {format_duration(duration)}",
        DIVIDER,
    ]
    for result in results:
        message = result.message
        timestamp = message.timestamp.astimezone().strftime("%d %b at %H:%M")
        lines.extend(
            [
                f"**{result.rank}.** {result.similarity * 100:.0f}% match (id {message.id})",
                f"**{escape_md(display_name(message.username))}** | {timestamp}",
                escape_md(truncate_text(message.text)),
                "",
            ]
        )
    lines.append("Results are ranked by relevance. Try other words for different results.")
    return "\n".join(lines)


def format_similar_results(message_id: int, results: Sequence[SearchResult]) -> str:
    if not results:
        return f"No messages are close enough to message {message_id}."
    lines = [f"**Messages similar to {message_id}**", DIVIDER]
    for result in results:
        message = result.message
        lines.append(
            f"**{result.rank}.** {result.similarity * 100:.0f}% | "
            f"**{escape_md(display_name(message.username))}**: {escape_md(truncate_text(message.text))}"
        )
    return "\n".join(lines)


def _no_results_suggestion(embedded: int) -> str:
    if embedded < 10:
        return "I need more conversations to learn from. Keep chatting and try again soon."
    if embedded < 50:
        return "Try broader search terms or different keywords."
    return "Try rephrasing your search; a slight change often helps."


def format_no_results(query: str, stats: Optional[CorpusStats]) -> str:
    lines = [
        "**No matching messages found**",
        f"Search: \"{escape_md(query)}\"",
    ]
    if stats is not None:
        lines += [
            "",
            f"Total messages: {stats.total_messages}",
            f"Searchable messages: {stats.embedded_messages}",
            "",
            f"**Suggestion:** {_no_results_suggestion(stats.embedded_messages)}",
        ]
    return "\n".join(lines)


def format_search_error(error: Exception) -> str:
    return "\n".join(
        [
            "**Search error**",
            f"Something went wrong while searching: {escape_md(str(error))}",
            "",
            "Try /stats to see whether I have enough messages, or /test to check the embedding service.",
        ]
    )


def _readiness_status(readiness: float) -> str:
    if readiness >= 0.8:
        return "Excellent, ready for great search results"
    if readiness >= 0.5:
        return "Good, search quality improving as I learn"
    if readiness >= 0.1:
        return "Getting started, keep chatting for better results"
    return "Just beginning, I need more messages to learn from"


def _quality_tip(embedded: int) -> str:
    if embedded >= 100:
        return "Excellent search quality expected"
    if embedded >= 50:
        return "Good search quality, results should be relevant"
    if embedded >= 20:
        return "Fair search quality, improving with more messages"
    if embedded >= 5:
        return "Basic search available, quality will improve"
    return "Need more messages for meaningful search results"


def format_stats(stats: CorpusStats, model: str, chat_id: int) -> str:
    return "\n".join(
        [
            "**Learning progress**",
            "",
            f"**Messages collected:** {stats.total_messages}",
            f"**Messages learned from:** {stats.embedded_messages}",
            f"**Search readiness:** {stats.readiness * 100:.1f}%",
            "",
            f"**Status:** {_readiness_status(stats.readiness)}",
            f"**Search quality:** {_quality_tip(stats.embedded_messages)}",
            "",
            f"Model: {escape_md(model)} | Chat ID: {chat_id}",
        ]
    )


def _search_status(seconds: float) -> str:
    if seconds <= 0:
        return "Waiting for searches"
    if seconds < 2:
        return "Fast"
    return "Slower than the 2s target"


def _embedding_status(seconds: float) -> str:
    if seconds <= 0:
        return "Waiting for messages"
    if seconds < 2:
        return "Fast processing"
    if seconds < 5:
        return "Normal speed"
    return "Slow, consider checking the embedding service"


def format_perf(snapshot: PerformanceSnapshot) -> str:
    memory = format_bytes(snapshot.memory_bytes)
    memory_status = "Higher usage" if memory.endswith("GB") else "Efficient"
    return "\n".join(
        [
            "**Performance dashboard**",
            "",
            f"**Search average:** {format_duration(snapshot.search_avg)} "
            f"over {snapshot.search_samples} {pluralize(snapshot.search_samples, 'search')}",
            f"Status: {_search_status(snapshot.search_avg)}",
            "",
            f"**Embedding average:** {format_duration(snapshot.embedding_avg)} "
            f"over {snapshot.embedding_samples} {pluralize(snapshot.embedding_samples, 'message')}",
            f"Status: {_embedding_status(snapshot.embedding_avg)} (background, non-blocking)",
            "",
            f"**Memory usage:** {memory} ({memory_status})",
        ]
    )


def format_connection_ok(duration: float, dimensions: int, model: str, api_url: str) -> str:
    return "\n".join(
        [
            "**Embedding service test successful**",
            "",
            f"Response time: {format_duration(duration)}",
            f"Dimensions: {dimensions}",
            f"Model: {escape_md(model)}",
            f"Service: {escape_md(api_url)}",
        ]
    )


def format_connection_failed(error: Exception, model: str, api_url: str) -> str:
    return "\n".join(
        [
            "**Embedding service connection failed**",
            "",
            f"**Problem:** {escape_md(str(error))}",
            "",
            "How to fix:",
            "1. Make sure Ollama is running: `ollama serve`",
            f"2. Install the model: `ollama pull {model}`",
            f"3. Check the service: `curl {api_url}/api/tags`",
        ]
    )
