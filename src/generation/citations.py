"""
Page references, page-range strings and citation text for retrieved chunks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from src.rag.index import ChunkMetadata


def page_reference(metadata: ChunkMetadata) -> Optional[str]:
    """'page 4' or 'pages 4-6' for a chunk, None when it has no page info."""
    start = metadata.page_start
    if start is None:
        return None
    end = metadata.page_end
    if end is not None and end != start:
        return f"pages {start}-{end}"
    return f"page {start}"


def default_citation(metadata: ChunkMetadata) -> str:
    """The producer's citation if any, else 'document, page N'."""
    if metadata.citation:
        return metadata.citation
    ref = page_reference(metadata)
    if ref:
        return f"{metadata.document_id}, {ref}"
    return metadata.document_id


def format_page_ranges(pages: Sequence[int]) -> str:
    """
    Collapse sorted unique page numbers into a readable string.

    [1, 2, 3, 5, 6] -> "pages 1-3, 5-6"; [4] -> "page 4"; [1, 2] -> "pages 1, 2".
    """
    if not pages:
        return ""
    if len(pages) == 1:
        return f"page {pages[0]}"

    spans: List[Tuple[int, int]] = []
    start = end = pages[0]
    for page in pages[1:]:
        if page == end + 1:
            end = page
            continue
        spans.append((start, end))
        start = end = page
    spans.append((start, end))

    # a lone pair of pages reads as a list, pairs among other runs as a range
    if len(spans) == 1 and end == start + 1:
        return f"pages {start}, {end}"
    runs = [f"{a}" if a == b else f"{a}-{b}" for a, b in spans]
    return f"pages {', '.join(runs)}"
