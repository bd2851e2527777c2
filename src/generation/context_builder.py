"""
Context builder for RAG answer generation.

Groups ranked chunks by source document, summarizes the pages each document
contributes, and formats one context string plus a citation list for the LLM.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from .citations import format_page_ranges

if TYPE_CHECKING:
    from src.rag.index import ChunkMetadata
    from src.rag.pipeline import RetrievalStats

ADJACENT_DISCOUNT = 0.8

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_NO_VARIANTS = "no_variants"
STATUS_TIMEOUT = "timeout"


@dataclass(frozen=True)
class ContextualChunk:
    """A chunk ready for the context block."""

    key: str
    score: float
    index: str
    content: str
    metadata: ChunkMetadata
    page_reference: Optional[str] = None
    citation: Optional[str] = None
    is_adjacent: bool = False

    @property
    def document_id(self) -> str:
        return self.metadata.document_id

    @property
    def chunk_index(self) -> int:
        return self.metadata.chunk_index


@dataclass(frozen=True)
class DocumentSummary:
    document_id: str
    relevant_chunks: int
    relevant_pages: List[int]
    page_ranges: str
    chunk_indices: List[int]
    average_score: float


@dataclass(frozen=True)
class ContextualResponse:
    """Terminal output of the retrieval pipeline."""

    chunks: List[ContextualChunk] = field(default_factory=list)
    document_summary: List[DocumentSummary] = field(default_factory=list)
    context_string: str = ""
    citations: List[str] = field(default_factory=list)
    status: str = STATUS_OK
    message: str = ""
    queries: List[str] = field(default_factory=list)
    stats: Optional["RetrievalStats"] = None

    @property
    def is_empty(self) -> bool:
        return not self.chunks


def _pages_touched(chunks: Sequence[ContextualChunk]) -> List[int]:
    pages: set[int] = set()
    for ch in chunks:
        start, end = ch.metadata.page_start, ch.metadata.page_end
        if start is None and end is None:
            continue
        if start is None or end is None or end < start:
            pages.update(p for p in (start, end) if p is not None)
        else:
            pages.update(range(start, end + 1))
    return sorted(pages)


def _within_document_key(chunk: ContextualChunk) -> Tuple[int, int]:
    return chunk.metadata.page_start or 0, chunk.metadata.chunk_index


def build_contextual_response(chunks: Sequence[ContextualChunk]) -> ContextualResponse:
    """
    Group chunks by document and build summaries, context string and citations.

    Args:
        chunks: Ranked chunks (order decides which document is seen first on ties).

    Returns:
        ContextualResponse with status "ok" ("empty" when no chunks were given).
    """
    by_doc: Dict[str, List[ContextualChunk]] = {}
    for ch in chunks:
        by_doc.setdefault(ch.document_id, []).append(ch)

    summaries: List[DocumentSummary] = []
    for doc_id, doc_chunks in by_doc.items():
        pages = _pages_touched(doc_chunks)
        summaries.append(
            DocumentSummary(
                document_id=doc_id,
                relevant_chunks=len(doc_chunks),
                relevant_pages=pages,
                page_ranges=format_page_ranges(pages),
                chunk_indices=sorted(c.chunk_index for c in doc_chunks),
                average_score=sum(c.score for c in doc_chunks) / len(doc_chunks),
            )
        )
    summaries.sort(key=lambda s: s.average_score, reverse=True)

    parts: List[str] = []
    citations: List[str] = []
    for summary in summaries:
        header = f"### From {summary.document_id}"
        if summary.page_ranges:
            header += f" ({summary.page_ranges})"
        parts.append(f"\n{header}:\n")
        for ch in sorted(by_doc[summary.document_id], key=_within_document_key):
            if ch.citation and ch.citation not in citations:
                citations.append(ch.citation)
            marker = f" [{ch.page_reference}]" if ch.page_reference else ""
            parts.append(f"{ch.content}{marker}\n")

    return ContextualResponse(
        chunks=list(chunks),
        document_summary=summaries,
        context_string="\n".join(parts),
        citations=citations,
        status=STATUS_OK if chunks else STATUS_EMPTY,
    )


def build_expanded_context(
    primary: Sequence[ContextualChunk],
    pool: Sequence[ContextualChunk],
    discount: float = ADJACENT_DISCOUNT,
) -> ContextualResponse:
    """
    Like build_contextual_response, plus the chunks right before and after each
    primary chunk when they appear in pool. Added neighbors are flagged
    is_adjacent and their score multiplied by discount.
    """
    by_position: Dict[Tuple[str, int], ContextualChunk] = {}
    for ch in pool:
        by_position.setdefault((ch.document_id, ch.chunk_index), ch)

    primary_keys = {ch.key for ch in primary}
    included: set[str] = set()
    selected: List[ContextualChunk] = []
    for ch in primary:
        if ch.key not in included:
            included.add(ch.key)
            selected.append(ch)
        for adj_index in (ch.chunk_index - 1, ch.chunk_index + 1):
            adjacent = by_position.get((ch.document_id, adj_index))
            # primary chunks keep their own score even when they neighbor another one
            if adjacent is None or adjacent.key in included or adjacent.key in primary_keys:
                continue
            included.add(adjacent.key)
            selected.append(
                dataclasses.replace(adjacent, score=adjacent.score * discount, is_adjacent=True)
            )

    selected.sort(key=lambda c: (c.document_id, c.chunk_index))
    return build_contextual_response(selected)


class ContextAssembler:
    """Builds the final ContextualResponse, optionally pulling in neighboring chunks."""

    def __init__(self, adjacent_discount: float = ADJACENT_DISCOUNT):
        self.adjacent_discount = adjacent_discount

    def assemble(
        self,
        chunks: Sequence[ContextualChunk],
        *,
        expand: bool = False,
        pool: Optional[Sequence[ContextualChunk]] = None,
    ) -> ContextualResponse:
        if expand:
            return build_expanded_context(chunks, pool or chunks, self.adjacent_discount)
        return build_contextual_response(chunks)
