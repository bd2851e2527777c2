"""
Context assembly for downstream answer generation.

- Grouping ranked chunks by document with page-range summaries
- Context string with page markers
- Citation list and optional neighbor-chunk expansion
"""

from .citations import default_citation, format_page_ranges, page_reference
from .context_builder import (
    ContextAssembler,
    ContextualChunk,
    ContextualResponse,
    DocumentSummary,
    build_contextual_response,
    build_expanded_context,
)

__all__ = [
    "ContextAssembler",
    "ContextualChunk",
    "ContextualResponse",
    "DocumentSummary",
    "build_contextual_response",
    "build_expanded_context",
    "default_citation",
    "format_page_ranges",
    "page_reference",
]
