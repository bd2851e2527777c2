"""
Configuration for the multi-query retrieval pipeline.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

DEFAULT_INDEX = os.getenv("DEFAULT_INDEX") or None


@dataclass
class RetrievalOptions:
    """Options recognized by retrieve_and_rank."""

    max_queries: int = 5
    top_k_per_query: int = 30
    final_top_k: int = 30
    weight_vector: float = 0.7
    max_distance: float = 0.3
    min_keyword_score: float = 1.0
    expand_context: bool = False
    max_results: int = 10
    # hybrid filtering
    hybrid_top_n: int = 10
    strong_keyword_score: float = 5.0
    distance_widening: float = 1.5
    # context assembly
    adjacent_discount: float = 0.8
    # execution
    variant_concurrency: int = 2
    request_timeout: Optional[float] = 60.0
    # index resolution
    index_patterns: Tuple[str, ...] = ()
    default_index: Optional[str] = DEFAULT_INDEX

    def __post_init__(self) -> None:
        if self.max_queries < 1:
            raise ValueError("max_queries must be >= 1")
        if not 0.0 <= self.weight_vector <= 1.0:
            raise ValueError("weight_vector must be within [0, 1]")
        self.variant_concurrency = max(1, self.variant_concurrency)
