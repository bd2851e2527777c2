"""
Merge ranked candidate lists from several query variants into one ranking.

Each chunk is scored from how often it appeared, its best and average rank,
and its best vector distance:

    combined = 0.4 * appearances / n_variants
             + 0.3 / best_rank
             + 0.2 / average_rank
             + 0.1 * (1 - best_distance)      (0.5 when no distance is known)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .hybrid import ScoredCandidate
from .index import ChunkMetadata

APPEARANCE_WEIGHT = 0.4
BEST_RANK_WEIGHT = 0.3
AVERAGE_RANK_WEIGHT = 0.2
DISTANCE_WEIGHT = 0.1
MISSING_DISTANCE_SCORE = 0.5


@dataclass
class VariantResults:
    """Ranked candidates (best first) returned for one query variant."""

    variant: str
    ranked: List[ScoredCandidate] = field(default_factory=list)


@dataclass
class RankedResult:
    """One distinct chunk across the whole multi-query search."""

    key: str
    index: str
    metadata: ChunkMetadata
    appearances: int
    best_rank: int
    average_rank: float
    best_distance: Optional[float] = None
    best_hybrid_score: float = 0.0
    combined_score: float = 0.0
    source_queries: List[str] = field(default_factory=list)


def combined_score(
    appearances: int,
    total_variants: int,
    best_rank: int,
    average_rank: float,
    best_distance: Optional[float],
) -> float:
    appearance_score = appearances / total_variants if total_variants else 0.0
    distance_score = MISSING_DISTANCE_SCORE if best_distance is None else 1.0 - best_distance
    return (
        APPEARANCE_WEIGHT * appearance_score
        + BEST_RANK_WEIGHT * (1.0 / best_rank)
        + AVERAGE_RANK_WEIGHT * (1.0 / average_rank)
        + DISTANCE_WEIGHT * distance_score
    )


def merge_ranked(
    per_variant: Sequence[VariantResults],
    top_n: Optional[int] = None,
) -> List[RankedResult]:
    """
    Fold per-variant rankings into one list sorted by combined score.

    Args:
        per_variant: One entry per variant searched, including variants that
                     returned nothing (they still count toward the total).
        top_n: Number of results to keep; None keeps all.

    Returns:
        RankedResult list, highest combined score first; ties keep first-seen order.
    """
    by_key: Dict[str, RankedResult] = {}

    for vr in per_variant:
        for pos, sc in enumerate(vr.ranked):
            rank = pos + 1
            cand = sc.candidate
            existing = by_key.get(cand.key)
            if existing is None:
                by_key[cand.key] = RankedResult(
                    key=cand.key,
                    index=cand.index,
                    metadata=cand.metadata,
                    appearances=1,
                    best_rank=rank,
                    average_rank=float(rank),
                    best_distance=cand.distance,
                    best_hybrid_score=sc.hybrid_score,
                    source_queries=[vr.variant],
                )
                continue
            existing.appearances += 1
            existing.best_rank = min(existing.best_rank, rank)
            existing.average_rank += (rank - existing.average_rank) / existing.appearances
            existing.source_queries.append(vr.variant)
            existing.best_hybrid_score = max(existing.best_hybrid_score, sc.hybrid_score)
            if cand.distance is not None and (
                existing.best_distance is None or cand.distance < existing.best_distance
            ):
                existing.best_distance = cand.distance

    total = len(per_variant)
    results = list(by_key.values())
    for r in results:
        r.combined_score = combined_score(
            r.appearances, total, r.best_rank, r.average_rank, r.best_distance
        )

    results.sort(key=lambda r: r.combined_score, reverse=True)
    if top_n is not None:
        results = results[:top_n]
    return results


class RankMerger:
    """Merges per-variant rankings, keeping at most top_n results."""

    def __init__(self, top_n: Optional[int] = None):
        self.top_n = top_n

    def merge(
        self, per_variant: Sequence[VariantResults], top_n: Optional[int] = None
    ) -> List[RankedResult]:
        return merge_ranked(per_variant, top_n if top_n is not None else self.top_n)
