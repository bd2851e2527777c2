"""
Utility functions for RAG module.
"""

from __future__ import annotations

import re
from typing import Iterable, List

TOKEN_RE = re.compile(r"[A-Za-z0-9_]+")
SECTION_NUMBER_RE = re.compile(r"\b\d+(?:\.\d+)*\b")

STOPWORDS = {
    "the", "a", "an", "and", "or", "but", "of", "in", "on", "at", "for", "to",
    "is", "are", "was", "were", "be", "as", "that", "this", "these", "those",
    "with", "by", "from", "it", "its", "we", "they", "you", "which",
    "what", "where", "when", "how", "why", "who", "does", "did", "do",
}


def iter_tokens(text: str, min_len: int = 3) -> Iterable[str]:
    """Lowercased word tokens of at least min_len characters, stop-words removed."""
    for match in TOKEN_RE.finditer(text.lower()):
        tok = match.group(0)
        if len(tok) < min_len:
            continue
        if tok in STOPWORDS:
            continue
        yield tok


def dedupe_preserving_order(items: Iterable[str], *, casefold: bool = False) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for item in items:
        marker = item.casefold() if casefold else item
        if marker in seen:
            continue
        seen.add(marker)
        out.append(item)
    return out
