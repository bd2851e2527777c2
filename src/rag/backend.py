"""
Vector similarity backend contract and an in-memory implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Mapping, Protocol, Sequence, Union

import numpy as np

from .index import ChunkRecord

RawMatch = Mapping[str, Any]


class VectorBackend(Protocol):
    """
    Per-index similarity search.

    query() returns at most top_k {"key", "distance", "metadata"} maps ordered
    by ascending distance. list_indices() reflects recency where known. Either
    method may be a coroutine function.
    """

    def query(
        self, index_name: str, vector: Sequence[float], top_k: int
    ) -> Union[List[RawMatch], Awaitable[List[RawMatch]]]:
        ...

    def list_indices(self) -> Union[List[str], Awaitable[List[str]]]:
        ...


@dataclass
class _LocalIndex:
    keys: List[str]
    metadata: List[Dict[str, Any]]
    matrix: np.ndarray  # shape: (n_chunks, dim), rows L2-normalized


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


@dataclass
class InMemoryVectorBackend:
    """Cosine-distance search over vectors held in memory, one matrix per index."""

    indices: Dict[str, _LocalIndex] = field(default_factory=dict)

    def add(
        self,
        index_name: str,
        keys: Sequence[str],
        vectors: Sequence[Sequence[float]],
        metadata: Sequence[Mapping[str, Any]],
    ) -> None:
        """Append vectors to an index, creating it if needed (newest index listed first)."""
        if not (len(keys) == len(vectors) == len(metadata)):
            raise ValueError("keys, vectors and metadata must have the same length")
        if not keys:
            return
        matrix = _normalize_rows(np.asarray(vectors, dtype=np.float32))
        existing = self.indices.pop(index_name, None)
        if existing is not None:
            matrix = np.vstack([existing.matrix, matrix])
            keys = existing.keys + list(keys)
            metadata = existing.metadata + [dict(m) for m in metadata]
        self.indices[index_name] = _LocalIndex(
            keys=list(keys),
            metadata=[dict(m) for m in metadata],
            matrix=matrix,
        )

    def add_chunks(self, chunks: Sequence[ChunkRecord], vectors: Sequence[Sequence[float]]) -> None:
        """Add loaded chunk records grouped by their index name."""
        by_index: Dict[str, List[int]] = {}
        for i, ch in enumerate(chunks):
            by_index.setdefault(ch.index, []).append(i)
        for name, positions in by_index.items():
            self.add(
                name,
                [chunks[i].key for i in positions],
                [vectors[i] for i in positions],
                [_metadata_dict(chunks[i]) for i in positions],
            )

    def list_indices(self) -> List[str]:
        return list(reversed(list(self.indices)))

    def query(self, index_name: str, vector: Sequence[float], top_k: int) -> List[Dict[str, Any]]:
        idx = self.indices.get(index_name)
        if idx is None:
            raise KeyError(f"index {index_name!r} not found")
        q = np.asarray(vector, dtype=np.float32)
        norm = float(np.linalg.norm(q))
        if norm == 0.0:
            norm = 1.0
        sims = idx.matrix @ (q / norm)
        distances = 1.0 - sims
        order = np.argsort(distances, kind="stable")[:top_k]
        return [
            {
                "key": idx.keys[int(i)],
                "distance": float(distances[int(i)]),
                "metadata": idx.metadata[int(i)],
            }
            for i in order
        ]


def _metadata_dict(chunk: ChunkRecord) -> Dict[str, Any]:
    m = chunk.metadata
    out: Dict[str, Any] = dict(m.extra)
    out.update(
        {
            "documentId": m.document_id,
            "chunkIndex": m.chunk_index,
            "content": m.content,
        }
    )
    optional = {
        "pageStart": m.page_start,
        "pageEnd": m.page_end,
        "totalChunks": m.total_chunks,
        "summary": m.summary,
        "sectionNumber": m.section_number,
        "sectionTitle": m.section_title,
        "topics": m.topics,
        "citation": m.citation,
        "filename": m.filename,
        "timestamp": m.timestamp,
    }
    out.update({k: v for k, v in optional.items() if v is not None})
    return out
