"""
Tests for query expansion and section-query detection.
"""

from __future__ import annotations

from typing import List

import pytest

from src.rag import QueryExpander, detect_section_query
from src.rag.query_expander import (
    CLOSING_EXPANSIONS,
    ORIGIN_GENERATED,
    ORIGIN_ORIGINAL,
    heuristic_variants,
    parse_generated_queries,
)
from src.rag.section_query import enhance_section_question


class _StubCompletionClient:
    def __init__(self, text: str = "", error: Exception | None = None):
        self.text = text
        self.error = error
        self.prompts: List[str] = []

    async def complete(self, system_prompt, user_prompt, max_tokens=200, temperature=0.7) -> str:
        self.prompts.append(user_prompt)
        if self.error is not None:
            raise self.error
        return self.text


def test_parse_generated_queries_skips_bullets_and_blanks():
    text = "windmill battle animal farm\n- bullet line\n1. numbered line\n\n  snowball windmill  \n"
    assert parse_generated_queries(text, limit=4) == [
        "windmill battle animal farm",
        "snowball windmill",
    ]
    assert parse_generated_queries(text, limit=1) == ["windmill battle animal farm"]


def test_heuristic_variants_for_closing_language():
    assert heuristic_variants("How did the story end?") == list(CLOSING_EXPANSIONS)


def test_heuristic_variants_keywords_and_section():
    assert heuristic_variants("the Battle of the Windmill") == ["battle windmill", "battle windmill"]
    assert "section 21.5" in heuristic_variants("What does section 21.5 say?")


@pytest.mark.anyio
async def test_generated_queries_follow_original():
    client = _StubCompletionClient("windmill battle animal farm\nsnowball windmill destruction")
    expander = QueryExpander(client)

    expansion = await expander.expand_with_status("Battle of the Windmill")

    assert expansion.texts == [
        "Battle of the Windmill",
        "windmill battle animal farm",
        "snowball windmill destruction",
    ]
    assert expansion.variants[0].origin == ORIGIN_ORIGINAL
    assert {v.origin for v in expansion.variants[1:]} == {ORIGIN_GENERATED}
    assert expansion.used_fallback is False
    assert 'Original query: "Battle of the Windmill"' in client.prompts[0]


@pytest.mark.anyio
async def test_duplicates_of_original_are_dropped_case_insensitively():
    client = _StubCompletionClient("battle of the windmill\nother query")

    variants = await QueryExpander(client).expand("Battle of the Windmill")

    assert [v.text for v in variants] == ["Battle of the Windmill", "other query"]


@pytest.mark.anyio
async def test_variant_count_is_capped():
    client = _StubCompletionClient("q1\nq2\nq3\nq4")

    variants = await QueryExpander(client).expand("question", max_queries=2)

    assert [v.text for v in variants] == ["question", "q1"]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "client",
    [_StubCompletionClient(error=RuntimeError("provider down")), _StubCompletionClient(text="")],
)
async def test_failed_generation_uses_heuristics(client):
    expansion = await QueryExpander(client).expand_with_status("the Battle of the Windmill")

    assert expansion.texts == ["the Battle of the Windmill", "battle windmill"]
    assert expansion.used_fallback is True


@pytest.mark.anyio
async def test_no_client_uses_heuristics():
    expansion = await QueryExpander().expand_with_status("the Battle of the Windmill")
    assert expansion.texts[0] == "the Battle of the Windmill"
    assert expansion.used_fallback is True


@pytest.mark.anyio
async def test_empty_question_has_no_variants():
    assert await QueryExpander().expand("   ") == []


@pytest.mark.parametrize(
    "question,number",
    [
        ("What does Section 21.5 say?", "21.5"),
        ("summarize chapter 3", "3"),
        ("rules in § 4.2", "4.2"),
        ("21.5?", "21.5"),
        ("the 7 section", "7"),
    ],
)
def test_detect_section_query(question, number):
    found = detect_section_query(question)
    assert found is not None
    assert found.number == number


def test_detect_section_query_none():
    assert detect_section_query("the Battle of the Windmill") is None


def test_section_matches_self_and_subsections_only():
    section = detect_section_query("section 21.5")
    assert section.matches("21.5")
    assert section.matches("21.5.1")
    assert not section.matches("21.50")
    assert not section.matches(None)


def test_enhance_section_question():
    assert enhance_section_question("What does section 21.5 say?") == (
        "Section 21.5 What does section 21.5 say?"
    )
    assert enhance_section_question("the windmill") == "the windmill"
