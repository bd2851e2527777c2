"""
Tests for context assembly (page ranges, grouping, citations, neighbor expansion).
"""

from __future__ import annotations

import pytest

from src.generation import (
    ContextAssembler,
    ContextualChunk,
    build_contextual_response,
    build_expanded_context,
    default_citation,
    format_page_ranges,
    page_reference,
)
from src.rag import ChunkMetadata


def _chunk(key: str, score: float, doc: str, index: int, page: int | None = None, **meta) -> ContextualChunk:
    metadata = ChunkMetadata(
        document_id=doc,
        chunk_index=index,
        page_start=page,
        page_end=meta.pop("page_end", page),
        content=meta.pop("content", f"content of {key}"),
        **meta,
    )
    return ContextualChunk(
        key=key,
        score=score,
        index="books",
        content=metadata.content,
        metadata=metadata,
        page_reference=page_reference(metadata),
        citation=default_citation(metadata),
    )


@pytest.fixture
def ranked_chunks() -> list[ContextualChunk]:
    return [
        _chunk("farm-5", 0.9, "animal-farm", 5, page=12),
        _chunk("manual-1", 0.5, "manual", 1, page=3),
        _chunk("farm-2", 0.7, "animal-farm", 2, page=4, page_end=6),
    ]


@pytest.mark.parametrize(
    "pages,expected",
    [
        ([1, 2, 3, 5, 6], "pages 1-3, 5-6"),
        ([4], "page 4"),
        ([1, 2], "pages 1, 2"),
        ([1, 3, 4, 5], "pages 1, 3-5"),
        ([2, 9], "pages 2, 9"),
        ([], ""),
    ],
)
def test_format_page_ranges(pages, expected):
    assert format_page_ranges(pages) == expected


def test_page_reference_and_citation():
    single = ChunkMetadata(document_id="d", chunk_index=0, page_start=4, page_end=4)
    span = ChunkMetadata(document_id="d", chunk_index=0, page_start=4, page_end=6)
    none = ChunkMetadata(document_id="d", chunk_index=0)
    own = ChunkMetadata(document_id="d", chunk_index=0, page_start=1, citation="Orwell 1945, p. 1")

    assert page_reference(single) == "page 4"
    assert page_reference(span) == "pages 4-6"
    assert page_reference(none) is None
    assert default_citation(span) == "d, pages 4-6"
    assert default_citation(none) == "d"
    assert default_citation(own) == "Orwell 1945, p. 1"


def test_groups_by_document_ordered_by_average_score(ranked_chunks):
    response = build_contextual_response(ranked_chunks)

    assert response.status == "ok"
    assert [s.document_id for s in response.document_summary] == ["animal-farm", "manual"]
    farm = response.document_summary[0]
    assert farm.relevant_chunks == 2
    assert farm.relevant_pages == [4, 5, 6, 12]
    assert farm.page_ranges == "pages 4-6, 12"
    assert farm.chunk_indices == [2, 5]
    assert farm.average_score == pytest.approx(0.8)


def test_context_string_orders_chunks_by_page(ranked_chunks):
    context = build_contextual_response(ranked_chunks).context_string

    assert "### From animal-farm (pages 4-6, 12):" in context
    assert "### From manual (page 3):" in context
    assert context.index("content of farm-2 [pages 4-6]") < context.index("content of farm-5 [page 12]")
    assert context.index("animal-farm") < context.index("manual")


def test_citations_are_deduplicated_in_first_seen_order():
    chunks = [
        _chunk("a", 0.9, "doc", 0, page=1, citation="Doc, ch. 1"),
        _chunk("b", 0.8, "doc", 1, page=2, citation="Doc, ch. 1"),
        _chunk("c", 0.7, "doc", 2, page=3),
    ]

    assert build_contextual_response(chunks).citations == ["Doc, ch. 1", "doc, page 3"]


def test_assembly_is_idempotent(ranked_chunks):
    first = build_contextual_response(ranked_chunks)
    second = build_contextual_response(first.chunks)

    assert first.context_string == second.context_string
    assert first.document_summary == second.document_summary


def test_empty_input_is_empty_status():
    response = build_contextual_response([])
    assert response.status == "empty"
    assert response.is_empty
    assert response.context_string == ""


def test_expansion_adds_discounted_neighbors():
    primary = [_chunk("farm-5", 0.9, "animal-farm", 5, page=12)]
    pool = primary + [
        _chunk("farm-4", 0.5, "animal-farm", 4, page=11),
        _chunk("farm-6", 0.4, "animal-farm", 6, page=13),
        _chunk("farm-8", 0.3, "animal-farm", 8, page=15),
        _chunk("other-4", 0.3, "other", 4, page=1),
    ]

    response = build_expanded_context(primary, pool)

    assert [c.key for c in response.chunks] == ["farm-4", "farm-5", "farm-6"]
    by_key = {c.key: c for c in response.chunks}
    assert by_key["farm-4"].is_adjacent
    assert by_key["farm-4"].score == pytest.approx(0.4)
    assert not by_key["farm-5"].is_adjacent
    assert by_key["farm-5"].score == pytest.approx(0.9)


def test_expansion_does_not_duplicate_or_discount_primary_chunks():
    primary = [
        _chunk("farm-5", 0.9, "animal-farm", 5),
        _chunk("farm-6", 0.8, "animal-farm", 6),
    ]

    response = ContextAssembler().assemble(primary, expand=True, pool=primary)

    assert [c.key for c in response.chunks] == ["farm-5", "farm-6"]
    assert [c.score for c in response.chunks] == [0.9, 0.8]
    assert not any(c.is_adjacent for c in response.chunks)
