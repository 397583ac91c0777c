"""Text normalisation shared by the classifier, matcher and option selection."""
from __future__ import annotations

import re
import unicodedata

_SPACES = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """Lowercase, strip accents, collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return _SPACES.sub(" ", stripped).strip()


def contains_any(haystack: str, needles) -> bool:
    return any(n in haystack for n in needles)


def dedupe_repeated(text: str) -> str:
    """Collapse label text the site renders twice ("Email Email" → "Email")."""
    text = _SPACES.sub(" ", text or "").strip()
    half = len(text) // 2
    if len(text) % 2 == 1 and text[:half] == text[half + 1:] and text[half] == " ":
        return text[:half]
    if len(text) % 2 == 0 and half and text[:half] == text[half:]:
        return text[:half]
    return text
