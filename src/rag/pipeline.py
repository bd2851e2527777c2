"""
Multi-query retrieval pipeline: expand -> embed -> fan-out search -> hybrid score
-> rank merge -> context assembly.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from src.generation.citations import default_citation, page_reference
from src.generation.context_builder import (
    STATUS_EMPTY,
    STATUS_NO_VARIANTS,
    STATUS_TIMEOUT,
    ContextAssembler,
    ContextualChunk,
    ContextualResponse,
)
from src.llm.client import create_client

from .backend import VectorBackend
from .config import RetrievalOptions
from .embeddings import EmbeddingProvider
from .fanout import FanoutResult, IndexFanoutSearcher, resolve_indices
from .hybrid import HybridScorer, ScoredCandidate
from .index import CandidateMatch
from .query_expander import ORIGIN_ORIGINAL, QueryExpander, QueryVariant
from .rank_merger import RankedResult, RankMerger, VariantResults
from .section_query import enhance_section_question

logger = logging.getLogger(__name__)

NO_CONTENT = "No content available"


@dataclass
class RetrievalStats:
    """Diagnostics for one retrieve_and_rank call."""

    query_count: int = 0
    index_count: int = 0
    indices_searched: List[str] = field(default_factory=list)
    failed_indices: List[str] = field(default_factory=list)
    total_candidates: int = 0
    total_unique: int = 0
    used_fallback_embedding: bool = False
    used_fallback_expansion: bool = False


@dataclass
class _VariantOutcome:
    results: VariantResults
    fanout: FanoutResult
    used_fallback_embedding: bool


def to_contextual_chunk(result: RankedResult) -> ContextualChunk:
    meta = result.metadata
    return ContextualChunk(
        key=result.key,
        score=result.combined_score,
        index=result.index,
        content=meta.content or NO_CONTENT,
        metadata=meta,
        page_reference=page_reference(meta),
        citation=default_citation(meta),
    )


def _scored_chunk(sc: ScoredCandidate) -> ContextualChunk:
    """Retrieved but unranked candidate, scored by its hybrid score (expansion pool only)."""
    meta = sc.candidate.metadata
    return ContextualChunk(
        key=sc.key,
        score=sc.hybrid_score,
        index=sc.candidate.index,
        content=meta.content or NO_CONTENT,
        metadata=meta,
        page_reference=page_reference(meta),
        citation=default_citation(meta),
    )


class RetrievalPipeline:
    """Holds the collaborators; every call builds its own request-local state."""

    def __init__(
        self,
        backend: VectorBackend,
        embedder: Optional[EmbeddingProvider] = None,
        expander: Optional[QueryExpander] = None,
    ):
        self.backend = backend
        self.embedder = embedder or EmbeddingProvider()
        self.expander = expander or QueryExpander()
        self.searcher = IndexFanoutSearcher(backend)

    @classmethod
    def from_env(
        cls,
        backend: VectorBackend,
        *,
        use_llm: bool = True,
        local_embeddings: bool = False,
    ) -> "RetrievalPipeline":
        """Wire providers from environment; missing credentials mean degraded mode."""
        client = None
        if use_llm:
            try:
                client = create_client()
            except ValueError as e:
                logger.warning("LLM provider disabled (%s); using fallback embeddings and heuristic expansion", e)

        if local_embeddings:
            from .dense import SentenceTransformerEmbedder

            local = SentenceTransformerEmbedder()
            embedder = EmbeddingProvider(local, dimension=local.dimension, min_interval=0.0)
        else:
            embedder = EmbeddingProvider(client)
        return cls(backend, embedder=embedder, expander=QueryExpander(client))

    async def retrieve_and_rank(
        self,
        question: str,
        index_names: Optional[Sequence[str]] = None,
        options: Optional[RetrievalOptions] = None,
    ) -> ContextualResponse:
        """
        Retrieve, rank and assemble context for a question.

        Always returns a ContextualResponse; degraded runs show up in status and
        stats. Raises ConfigurationError only when no index can be resolved.
        """
        options = options or RetrievalOptions()
        if options.request_timeout is None:
            return await self._run(question, index_names, options)
        try:
            return await asyncio.wait_for(
                self._run(question, index_names, options), timeout=options.request_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Retrieval timed out after %ss for %r", options.request_timeout, question)
            return ContextualResponse(
                status=STATUS_TIMEOUT,
                message=f"retrieval timed out after {options.request_timeout}s",
            )

    async def _run(
        self,
        question: str,
        index_names: Optional[Sequence[str]],
        options: RetrievalOptions,
    ) -> ContextualResponse:
        question = question.strip()
        if not question:
            return ContextualResponse(status=STATUS_NO_VARIANTS, message="empty question")

        indices = await resolve_indices(
            self.backend,
            index_names,
            patterns=options.index_patterns,
            default_index=options.default_index,
        )
        logger.info("Multi-query search for %r over %s indices", question, len(indices))

        expansion = await self.expander.expand_with_status(question, options.max_queries)
        variants = expansion.variants
        if not variants:
            return ContextualResponse(status=STATUS_NO_VARIANTS, message="no query variants")
        for i, v in enumerate(variants, 1):
            logger.info("  %s. %r (%s)", i, v.text, v.origin)

        scorer = HybridScorer(
            weight_vector=options.weight_vector,
            max_distance=options.max_distance,
            min_keyword_score=options.min_keyword_score,
            strong_keyword_score=options.strong_keyword_score,
            distance_widening=options.distance_widening,
            top_n=options.hybrid_top_n,
        )
        semaphore = asyncio.Semaphore(options.variant_concurrency)
        outcomes = await asyncio.gather(
            *(
                self._run_variant(v, question, indices, options, scorer, semaphore)
                for v in variants
            ),
            return_exceptions=True,
        )

        stats = RetrievalStats(
            query_count=len(variants),
            index_count=len(indices),
            used_fallback_expansion=expansion.used_fallback,
        )
        per_variant: List[VariantResults] = []
        retrieved: Dict[str, CandidateMatch] = {}
        searched: set[str] = set()
        failed: set[str] = set()
        for v, outcome in zip(variants, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, Exception):
                logger.error("Variant %r failed: %s", v.text, outcome)
                continue
            per_variant.append(outcome.results)
            searched.update(outcome.fanout.searched_indices)
            failed.update(outcome.fanout.failed_indices)
            stats.total_candidates += len(outcome.fanout.candidates)
            for cand in outcome.fanout.candidates:
                retrieved.setdefault(cand.key, cand)
            stats.used_fallback_embedding |= outcome.used_fallback_embedding
        stats.indices_searched = [n for n in indices if n in searched]
        stats.failed_indices = [n for n in indices if n in failed]

        queries = [v.text for v in variants]
        if not per_variant:
            return ContextualResponse(
                status=STATUS_NO_VARIANTS,
                message="every query variant failed",
                queries=queries,
                stats=stats,
            )

        merged = RankMerger().merge(per_variant)
        stats.total_unique = len(merged)
        ranked = merged[: options.final_top_k]
        for i, r in enumerate(ranked[:10], 1):
            logger.debug(
                "  %s. %s: appeared %s/%s, best rank %s, score %.3f",
                i,
                r.key,
                r.appearances,
                len(per_variant),
                r.best_rank,
                r.combined_score,
            )

        primary = [to_contextual_chunk(r) for r in ranked[: options.max_results]]
        if not primary:
            logger.info("No candidates survived filtering for %r", question)
            return ContextualResponse(
                status=STATUS_EMPTY,
                message="no matching chunks",
                queries=queries,
                stats=stats,
            )

        assembler = ContextAssembler(adjacent_discount=options.adjacent_discount)
        if options.expand_context:
            pool = [to_contextual_chunk(r) for r in merged]
            ranked_keys = {r.key for r in merged}
            unranked = [c for c in retrieved.values() if c.key not in ranked_keys]
            pool.extend(_scored_chunk(sc) for sc in scorer.score(unranked, question))
            response = assembler.assemble(primary, expand=True, pool=pool)
        else:
            response = assembler.assemble(primary)

        logger.info(
            "Found %s chunks from %s documents",
            len(response.chunks),
            len(response.document_summary),
        )
        return dataclasses.replace(response, queries=queries, stats=stats)

    async def _run_variant(
        self,
        variant: QueryVariant,
        question: str,
        indices: Sequence[str],
        options: RetrievalOptions,
        scorer: HybridScorer,
        semaphore: asyncio.Semaphore,
    ) -> _VariantOutcome:
        async with semaphore:
            text = variant.text
            if variant.origin == ORIGIN_ORIGINAL:
                text = enhance_section_question(text)
            embedding = await self.embedder.embed_with_status(text)
            fanout = await self.searcher.search(
                variant.text, embedding.vector, indices, options.top_k_per_query
            )
            ranked = scorer.filter_and_rank(fanout.candidates, question)
        return _VariantOutcome(
            results=VariantResults(variant=variant.text, ranked=ranked),
            fanout=fanout,
            used_fallback_embedding=embedding.used_fallback,
        )


async def retrieve_and_rank(
    question: str,
    index_names: Optional[Sequence[str]] = None,
    options: Optional[RetrievalOptions] = None,
    *,
    backend: VectorBackend,
    embedder: Optional[EmbeddingProvider] = None,
    expander: Optional[QueryExpander] = None,
) -> ContextualResponse:
    """Functional entry point; see RetrievalPipeline.retrieve_and_rank."""
    pipeline = RetrievalPipeline(backend, embedder=embedder, expander=expander)
    return await pipeline.retrieve_and_rank(question, index_names, options)


def retrieve_and_rank_sync(
    question: str,
    index_names: Optional[Sequence[str]] = None,
    options: Optional[RetrievalOptions] = None,
    *,
    backend: VectorBackend,
    embedder: Optional[EmbeddingProvider] = None,
    expander: Optional[QueryExpander] = None,
) -> ContextualResponse:
    """Blocking wrapper for callers without an event loop."""
    return asyncio.run(
        retrieve_and_rank(
            question,
            index_names,
            options,
            backend=backend,
            embedder=embedder,
            expander=expander,
        )
    )
