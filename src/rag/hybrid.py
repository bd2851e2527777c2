"""
Hybrid scoring: vector distance blended with keyword overlap against the question.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from .index import CandidateMatch, ChunkMetadata
from .section_query import SectionQuery
from .utils import SECTION_NUMBER_RE, STOPWORDS, dedupe_preserving_order

logger = logging.getLogger(__name__)

CONTENT_MATCH_POINTS = 2.0
SECTION_NUMBER_POINTS = 10.0
SECTION_TITLE_POINTS = 5.0
TOPIC_POINTS = 3.0
SUMMARY_POINTS = 2.0
KEYWORD_NORMALIZER = 10.0

_STRIP_RE = re.compile(r"[^\w\s.\-]")


def extract_keywords(question: str) -> List[str]:
    """
    Section-number tokens (kept even if short) followed by lowercase words
    longer than 2 characters that are not stop-words.
    """
    section_numbers = SECTION_NUMBER_RE.findall(question)
    words = []
    for raw in _STRIP_RE.sub("", question.lower()).split():
        word = raw.strip(".-")
        if len(word) > 2 and word not in STOPWORDS:
            words.append(word)
    return dedupe_preserving_order([*section_numbers, *words])


def keyword_score(metadata: ChunkMetadata, keywords: Iterable[str]) -> float:
    """Points for whole-word content hits and metadata field hits."""
    score = 0.0
    content = metadata.content.lower()
    title = (metadata.section_title or "").lower()
    topics = (metadata.topics or "").lower()
    summary = (metadata.summary or "").lower()
    for kw in keywords:
        hits = len(re.findall(rf"\b{re.escape(kw)}\b", content))
        score += hits * CONTENT_MATCH_POINTS
        if SectionQuery(kw).matches(metadata.section_number):
            score += SECTION_NUMBER_POINTS
        if kw in title:
            score += SECTION_TITLE_POINTS
        if kw in topics:
            score += TOPIC_POINTS
        if kw in summary:
            score += SUMMARY_POINTS
    return score


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate match with its keyword and hybrid scores."""

    candidate: CandidateMatch
    keyword_score: float
    hybrid_score: float

    @property
    def key(self) -> str:
        return self.candidate.key

    @property
    def distance(self) -> float | None:
        return self.candidate.distance


class HybridScorer:
    """Blend vector similarity with keyword evidence and filter weak candidates."""

    def __init__(
        self,
        *,
        weight_vector: float = 0.7,
        max_distance: float = 0.3,
        min_keyword_score: float = 1.0,
        strong_keyword_score: float = 5.0,
        distance_widening: float = 1.5,
        top_n: int = 10,
    ):
        self.weight_vector = weight_vector
        self.max_distance = max_distance
        self.min_keyword_score = min_keyword_score
        self.strong_keyword_score = strong_keyword_score
        self.distance_widening = distance_widening
        self.top_n = top_n

    def score(self, candidates: Sequence[CandidateMatch], question: str) -> List[ScoredCandidate]:
        """Score every candidate; no filtering, input order preserved."""
        keywords = extract_keywords(question)
        scored: List[ScoredCandidate] = []
        for cand in candidates:
            kw_score = keyword_score(cand.metadata, keywords)
            normalized = min(kw_score / KEYWORD_NORMALIZER, 1.0)
            vector_score = 1.0 - (cand.distance or 0.0)
            hybrid = self.weight_vector * vector_score + (1.0 - self.weight_vector) * normalized
            scored.append(ScoredCandidate(candidate=cand, keyword_score=kw_score, hybrid_score=hybrid))
        return scored

    def passes(self, sc: ScoredCandidate) -> bool:
        distance = sc.candidate.sort_distance
        if sc.keyword_score > self.strong_keyword_score:
            return distance <= self.max_distance * self.distance_widening
        return distance <= self.max_distance or sc.keyword_score >= self.min_keyword_score

    def filter_and_rank(
        self, candidates: Sequence[CandidateMatch], question: str
    ) -> List[ScoredCandidate]:
        """Score, filter, sort by hybrid score (stable) and cap at top_n."""
        scored = self.score(candidates, question)
        kept = [sc for sc in scored if self.passes(sc)]
        kept.sort(key=lambda sc: sc.hybrid_score, reverse=True)
        kept = kept[: self.top_n]
        logger.debug("Hybrid filter kept %s/%s candidates", len(kept), len(scored))
        return kept
