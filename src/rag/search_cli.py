"""
Run the multi-query retrieval pipeline over a local chunks JSONL file.

Usage:
  python -m src.rag.search_cli "What happened at the Battle of the Windmill?"
  python -m src.rag.search_cli --chunks-path data/chunks.jsonl --expand --local-embeddings "..."
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import List

from .backend import InMemoryVectorBackend
from .config import RetrievalOptions
from .embeddings import EmbeddingProvider
from .index import CHUNKS_PATH, ChunkRecord, load_chunks
from .pipeline import RetrievalPipeline


async def _embed_chunks(provider: EmbeddingProvider, chunks: List[ChunkRecord]) -> List[List[float]]:
    encode = getattr(provider.client, "encode", None)
    if callable(encode):
        return await asyncio.to_thread(encode, [ch.metadata.content for ch in chunks])
    return [await provider.embed(ch.metadata.content) for ch in chunks]


async def run(args: argparse.Namespace) -> None:
    chunks = load_chunks(path=args.chunks_path, index_name=args.index)
    if not chunks:
        print(f"[skip] no chunks in {args.chunks_path}")
        return

    backend = InMemoryVectorBackend()
    pipeline = RetrievalPipeline.from_env(
        backend,
        use_llm=not args.no_llm,
        local_embeddings=args.local_embeddings,
    )
    print(f"[index] chunks={len(chunks)}")
    backend.add_chunks(chunks, await _embed_chunks(pipeline.embedder, chunks))

    options = RetrievalOptions(
        max_queries=args.max_queries,
        max_results=args.max_results,
        expand_context=args.expand,
    )
    response = await pipeline.retrieve_and_rank(args.question, args.indices or None, options)

    print(f"[status] {response.status} {response.message}".rstrip())
    for i, q in enumerate(response.queries, 1):
        print(f"[query {i}] {q}")
    print(response.context_string)
    for citation in response.citations:
        print(f"[cite] {citation}")
    if response.stats is not None:
        s = response.stats
        print(
            f"[stats] queries={s.query_count} indices={s.index_count} "
            f"failed={len(s.failed_indices)} candidates={s.total_candidates} unique={s.total_unique}"
        )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Multi-query hybrid retrieval over a local chunks file.",
    )
    parser.add_argument("question", type=str, help="Question to retrieve context for")
    parser.add_argument(
        "--chunks-path",
        type=Path,
        default=CHUNKS_PATH,
        help="Path to chunks JSONL",
    )
    parser.add_argument(
        "--index",
        type=str,
        default="local",
        help="Index name for chunks without their own 'index' field",
    )
    parser.add_argument(
        "--indices",
        nargs="*",
        default=None,
        help="Explicit index names to search (default: all)",
    )
    parser.add_argument("--max-queries", type=int, default=5, help="Max query variants")
    parser.add_argument("--max-results", type=int, default=10, help="Chunks in the context")
    parser.add_argument("--expand", action="store_true", help="Include neighboring chunks")
    parser.add_argument(
        "--local-embeddings",
        action="store_true",
        help="Embed with a local sentence-transformers model",
    )
    parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Skip the LLM provider (heuristic expansion, fallback embeddings)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
