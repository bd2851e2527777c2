"""
Query expansion: one question -> original plus LLM-generated or heuristic variants.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from .section_query import detect_section_query
from .utils import dedupe_preserving_order, iter_tokens

logger = logging.getLogger(__name__)

ORIGIN_ORIGINAL = "original"
ORIGIN_GENERATED = "generated"

EXPANSION_SYSTEM_PROMPT = """You are a query expansion assistant. Given a user's question, generate {n} related search queries that would help find relevant content. Focus on:
1. Rephrasing the original question
2. Extracting key concepts and searching for them
3. Using synonyms for important terms
4. Breaking down complex queries into simpler parts

Return ONLY the queries, one per line, no numbering or bullets."""

EXPANSION_USER_PROMPT = 'Original query: "{question}"\n\nGenerate {n} related search queries:'

_BULLET_RE = re.compile(r"^(?:[-*•]|\d+[.)])")

CLOSING_TERMS = ("last", "final", "ending", "end", "conclusion")
CLOSING_EXPANSIONS = (
    "final paragraph ending conclusion",
    "the end epilogue afterward",
    "closing final words last sentence",
)


class CompletionClient(Protocol):
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 200,
        temperature: float = 0.7,
    ) -> str:
        ...


@dataclass(frozen=True)
class QueryVariant:
    """One search query derived from the question."""

    text: str
    origin: str = ORIGIN_GENERATED


@dataclass
class Expansion:
    variants: List[QueryVariant] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def texts(self) -> List[str]:
        return [v.text for v in self.variants]


def parse_generated_queries(text: str, limit: int) -> List[str]:
    """One query per line; blank, bulleted and numbered lines are dropped."""
    out: List[str] = []
    for line in text.splitlines():
        q = line.strip()
        if not q or _BULLET_RE.match(q):
            continue
        out.append(q)
    return out[:limit]


def heuristic_variants(question: str) -> List[str]:
    """Keyword phrase, trailing keywords, section reference and closing-language synonyms."""
    words = list(iter_tokens(question, min_len=4))
    variants: List[str] = []
    q_words = set(re.findall(r"[a-z]+", question.lower()))
    if any(term in q_words for term in CLOSING_TERMS):
        variants.extend(CLOSING_EXPANSIONS)
    if len(words) > 1:
        variants.append(" ".join(words))
        variants.append(" ".join(words[-2:]))
    section = detect_section_query(question)
    if section is not None:
        variants.append(f"section {section.number}")
    return variants


class QueryExpander:
    """Produces query variants; the original question always comes first."""

    def __init__(
        self,
        client: Optional[CompletionClient] = None,
        *,
        num_generated: int = 4,
        max_queries: int = 5,
        max_tokens: int = 200,
        temperature: float = 0.7,
    ):
        self.client = client
        self.num_generated = num_generated
        self.max_queries = max(1, max_queries)
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def expand(self, question: str, max_queries: Optional[int] = None) -> List[QueryVariant]:
        return (await self.expand_with_status(question, max_queries)).variants

    async def expand_with_status(
        self, question: str, max_queries: Optional[int] = None
    ) -> Expansion:
        base = question.strip()
        cap = max(1, max_queries or self.max_queries)
        if not base:
            return Expansion(variants=[], used_fallback=False)

        generated: List[str] = []
        used_fallback = True
        if self.client is not None:
            try:
                generated = await self._generate(base)
                used_fallback = not generated
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error generating related queries, using heuristic fallback: %s", e)
        if used_fallback:
            generated = heuristic_variants(base)

        return Expansion(
            variants=self._assemble(base, generated, cap),
            used_fallback=used_fallback,
        )

    async def _generate(self, question: str) -> List[str]:
        text = await self.client.complete(
            EXPANSION_SYSTEM_PROMPT.format(n=self.num_generated),
            EXPANSION_USER_PROMPT.format(question=question, n=self.num_generated),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        queries = parse_generated_queries(text, self.num_generated)
        if not queries:
            logger.warning("Completion returned no usable queries for %r", question)
        return queries

    @staticmethod
    def _assemble(question: str, generated: Sequence[str], cap: int) -> List[QueryVariant]:
        texts = dedupe_preserving_order([question, *generated], casefold=True)
        variants = [QueryVariant(question, ORIGIN_ORIGINAL)]
        variants.extend(QueryVariant(t, ORIGIN_GENERATED) for t in texts[1:])
        return variants[:cap]
