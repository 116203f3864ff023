"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EmbeddingConfig:
    """Embedding provider settings consumed by the embedder adapter."""

    api_url: str = "http://localhost:11434"
    model: str = "all-minilm:latest"
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class SearchConfig:
    """Search settings for the similarity engine and ingestion pool."""

    max_results: int = 3
    ingestion_workers: int = 4


@dataclass(frozen=True)
class MonitorConfig:
    """Rolling window size and reporting cadence for the performance monitor."""

    window_size: int = 100
    report_interval_seconds: float = 300.0
