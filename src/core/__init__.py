"""Core domain package for telerecall.

Core contains text cleaning, similarity scoring, search, ingestion and
telemetry without any Telegram, HTTP or storage-specific code, keeping the
business logic portable.
"""
