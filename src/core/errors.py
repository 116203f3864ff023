"""Error taxonomy shared by the core and its adapters.

Zero search results is not an error; callers get an empty list instead.
"""

from __future__ import annotations

from typing import Optional


class TelerecallError(Exception):
    """Base class for every error raised by telerecall."""


class ValidationError(TelerecallError, ValueError):
    """Input rejected before any I/O happened (empty query or text)."""


class EmbeddingError(TelerecallError):
    """The embedding provider could not produce a vector."""


class TransportError(EmbeddingError):
    """Provider unreachable, timed out, or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SearchError(TelerecallError):
    """A search could not be completed."""


class DataError(TelerecallError):
    """Stored data is missing or malformed."""


class SourceMessageNotFound(DataError):
    """The message a similarity lookup starts from does not exist."""


class MissingEmbeddingError(DataError):
    """The message exists but has no embedding yet (or never will)."""
