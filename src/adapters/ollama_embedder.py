"""Ollama embedding adapter.

Implements the core EmbedderPort against the Ollama HTTP API
(``POST /api/embeddings``). Every call is independent: no retries, no
caching, no batching. Callers decide what a failure means.
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import List

from core.config import EmbeddingConfig
from core.errors import EmbeddingError, TransportError, ValidationError

LOGGER = logging.getLogger(__name__)

PROBE_TEXT = "test connection"


def _error_detail(body: bytes) -> str:
    """Prefer the provider's structured ``error`` field over the raw body."""

    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        return text
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return text


class OllamaEmbedder:
    """Embedder adapter that calls a local or remote Ollama server."""

    def __init__(self, config: EmbeddingConfig) -> None:
        self._base_url = config.api_url.rstrip("/")
        self._model = config.model
        self._timeout = config.timeout_seconds

    @property
    def model(self) -> str:
        return self._model

    @property
    def base_url(self) -> str:
        return self._base_url

    def _open(self, request: urllib.request.Request) -> bytes:
        url = request.full_url
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                return response.read()
        except urllib.error.HTTPError as e:
            detail = _error_detail(e.read())
            raise TransportError(f"ollama API error ({e.code}): {detail}", status_code=e.code) from e
        except (urllib.error.URLError, OSError) as e:
            # URLError also wraps connection refused; socket timeouts surface as OSError.
            raise TransportError(f"failed to make request to {url}: {e}") from e
        except (http.client.HTTPException, ValueError) as e:
            # Truncated bodies (IncompleteRead) and malformed URLs are not OSErrors.
            raise TransportError(f"failed to make request to {url}: {e}") from e

    def embed(self, text: str) -> List[float]:
        """Return the embedding vector for ``text``."""

        if not text:
            raise ValidationError("text cannot be empty")

        payload = {"model": self._model, "prompt": text}
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(f"{self._base_url}/api/embeddings", data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        body = self._open(request)

        try:
            embedding = json.loads(body)["embedding"]
            vector = [float(value) for value in embedding or []]
        except (ValueError, KeyError, TypeError) as e:
            raise EmbeddingError(f"failed to decode embedding response: {e}") from e

        if not vector:
            raise EmbeddingError("empty embedding from provider")
        return vector

    def test_connection(self) -> None:
        """Embed a fixed probe phrase once; raise if the provider is not usable."""

        try:
            self.embed(PROBE_TEXT)
        except EmbeddingError as e:
            raise EmbeddingError(f"connection test failed: {e}") from e
        LOGGER.debug("Embedding provider at %s answered the probe", self._base_url)

    def model_info(self) -> str:
        """Return the raw ``/api/tags`` listing of models installed on the server."""

        request = urllib.request.Request(f"{self._base_url}/api/tags", method="GET")
        return self._open(request).decode("utf-8", errors="replace")
