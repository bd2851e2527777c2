"""
Error taxonomy for the retrieval pipeline.

Only ConfigurationError is meant to reach callers; the others are recovered
locally (fallback embeddings, excluded indices, dropped matches).
"""

from __future__ import annotations

from src.llm.errors import ProviderUnavailable, RetrievalError


class ConfigurationError(RetrievalError):
    """No index names supplied and none could be resolved."""


class IndexQueryFailed(RetrievalError):
    """A single index's similarity query raised."""

    def __init__(self, index_name: str, cause: BaseException):
        super().__init__(f"query against index {index_name!r} failed: {cause}")
        self.index_name = index_name
        self.cause = cause


class InvalidChunkMetadata(RetrievalError, ValueError):
    """A match's metadata lacks the identity fields (document id, chunk index)."""


__all__ = [
    "ConfigurationError",
    "IndexQueryFailed",
    "InvalidChunkMetadata",
    "ProviderUnavailable",
    "RetrievalError",
]
