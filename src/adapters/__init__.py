"""Adapters connecting the core to Telegram, Ollama and SQLite."""
