"""Text cleaning helpers (core domain)."""

from __future__ import annotations

import re

MIN_MEANINGFUL_CHARS = 3


def clean_text(text: str) -> str:
    """Collapse runs of whitespace to one space and trim both ends."""

    return re.sub(r"\s+", " ", text).strip()


def is_meaningful(cleaned_text: str) -> bool:
    """Return True when the text carries enough characters to be worth indexing."""

    visible = re.sub(r"\s", "", cleaned_text)
    return len(visible) >= MIN_MEANINGFUL_CHARS
