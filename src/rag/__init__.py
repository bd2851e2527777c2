"""
RAG (Retrieval-Augmented Generation) module.

Multi-query retrieval and ranking over vector indices:
- Query expansion (LLM with heuristic fallback)
- Query embedding with deterministic fallback vectors
- Fan-out search across indices with per-index failure isolation
- Hybrid vector/keyword scoring
- Rank merging across query variants
"""

from .backend import InMemoryVectorBackend, VectorBackend
from .config import RetrievalOptions
from .embeddings import EmbeddingProvider, EmbeddingResult, fallback_embedding
from .errors import (
    ConfigurationError,
    IndexQueryFailed,
    InvalidChunkMetadata,
    ProviderUnavailable,
    RetrievalError,
)
from .fanout import FanoutResult, IndexFanoutSearcher, resolve_indices
from .hybrid import HybridScorer, ScoredCandidate, extract_keywords, keyword_score
from .index import CandidateMatch, ChunkMetadata, ChunkRecord, load_chunks
from .pipeline import RetrievalPipeline, RetrievalStats, retrieve_and_rank, retrieve_and_rank_sync
from .query_expander import Expansion, QueryExpander, QueryVariant
from .rank_merger import RankedResult, RankMerger, VariantResults, merge_ranked
from .section_query import SectionQuery, detect_section_query

__all__ = [
    "CandidateMatch",
    "ChunkMetadata",
    "ChunkRecord",
    "load_chunks",
    "ConfigurationError",
    "IndexQueryFailed",
    "InvalidChunkMetadata",
    "ProviderUnavailable",
    "RetrievalError",
    "EmbeddingProvider",
    "EmbeddingResult",
    "fallback_embedding",
    "Expansion",
    "QueryExpander",
    "QueryVariant",
    "FanoutResult",
    "IndexFanoutSearcher",
    "resolve_indices",
    "HybridScorer",
    "ScoredCandidate",
    "extract_keywords",
    "keyword_score",
    "RankedResult",
    "RankMerger",
    "VariantResults",
    "merge_ranked",
    "InMemoryVectorBackend",
    "VectorBackend",
    "RetrievalOptions",
    "RetrievalPipeline",
    "RetrievalStats",
    "retrieve_and_rank",
    "retrieve_and_rank_sync",
    "SectionQuery",
    "detect_section_query",
]
