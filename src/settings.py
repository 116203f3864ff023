"""Static configuration for telerecall.

User-editable settings (embedding service, search, monitor, logging) live in
a single JSON file for quick edits without touching Python. Secrets and
per-deployment overrides come from the environment (``.env`` supported).
"""

import json
import os

from dotenv import load_dotenv

from core.config import EmbeddingConfig, MonitorConfig, SearchConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.environ.get("TELERECALL_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))

load_dotenv()


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _env(key: str, fallback: str) -> str:
    """Non-empty environment values win over config.json."""

    value = os.getenv(key)
    return value if value else fallback


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database. Relative paths resolve from the project root.
_database = _CONFIG.get("database", {})
DB_PATH = _env("DATABASE_PATH", _database.get("path", "messages.db"))
if not os.path.isabs(DB_PATH):
    DB_PATH = os.path.join(PROJECT_ROOT, DB_PATH)

# Embedding provider (Ollama-compatible). The model decides vector dimensionality.
_embedding = _CONFIG.get("embedding", {})
EMBEDDING = EmbeddingConfig(
    api_url=_env("EMBEDDING_API_URL", _embedding.get("api_url", "http://localhost:11434")),
    model=_env("EMBEDDING_MODEL", _embedding.get("model", "all-minilm:latest")),
    timeout_seconds=float(_embedding.get("timeout_seconds", 30)),
)

# Search result cap and the size of the background embedding pool.
_search = _CONFIG.get("search", {})
_ingestion = _CONFIG.get("ingestion", {})
SEARCH = SearchConfig(
    max_results=int(_search.get("max_results", 3)),
    ingestion_workers=int(_ingestion.get("max_workers", 4)),
)

# Rolling latency windows and how often the aggregate is logged.
_monitor = _CONFIG.get("monitor", {})
MONITOR = MonitorConfig(
    window_size=int(_monitor.get("window_size", 100)),
    report_interval_seconds=float(_monitor.get("report_interval_seconds", 300)),
)

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
