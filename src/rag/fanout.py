"""
Fan-out similarity search: one query vector against every named index in parallel.
"""

from __future__ import annotations

import asyncio
import fnmatch
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from .backend import VectorBackend
from .errors import ConfigurationError, IndexQueryFailed, InvalidChunkMetadata
from .index import CandidateMatch, ChunkMetadata

logger = logging.getLogger(__name__)

QUERY_INDEX_PREFIX = "query-"


async def call_backend(fn: Callable[..., Any], *args: Any) -> Any:
    """Await async backend methods; run sync ones in a worker thread."""
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    result = await asyncio.to_thread(fn, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def resolve_indices(
    backend: VectorBackend,
    index_names: Optional[Sequence[str]],
    *,
    patterns: Sequence[str] = (),
    default_index: Optional[str] = None,
) -> List[str]:
    """
    Decide which indices to search.

    Explicit names win. Otherwise the backend listing is used, minus query-*
    indices and filtered by glob patterns; then default_index. Raises
    ConfigurationError when nothing resolves.
    """
    explicit = [n for n in (index_names or []) if n]
    if explicit:
        return list(dict.fromkeys(explicit))

    listed: List[str] = []
    try:
        listed = list(await call_backend(backend.list_indices))
        logger.info("Found %s indices", len(listed))
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning("Listing indices failed: %s", e)

    targets = [n for n in listed if not n.startswith(QUERY_INDEX_PREFIX)]
    if patterns:
        targets = [n for n in targets if any(fnmatch.fnmatchcase(n, p) for p in patterns)]
        logger.info("Filtered to %s indices matching %s", len(targets), list(patterns))

    if not targets and default_index:
        logger.warning("No indices resolved, defaulting to %r", default_index)
        targets = [default_index]
    if not targets:
        raise ConfigurationError("no index names supplied and none could be resolved")
    return targets


@dataclass
class FanoutResult:
    """Candidates for one query variant across all indices."""

    candidates: List[CandidateMatch] = field(default_factory=list)
    searched_indices: List[str] = field(default_factory=list)
    failed_indices: List[str] = field(default_factory=list)


def _to_candidates(index_name: str, raw_matches: Sequence[Any]) -> List[CandidateMatch]:
    out: List[CandidateMatch] = []
    for raw in raw_matches or []:
        # one malformed match is dropped, the rest of the index still counts
        try:
            key = str(raw["key"])
            distance = raw.get("distance")
            distance = None if distance is None else float(distance)
            metadata = ChunkMetadata.from_dict(raw.get("metadata"), index_name)
        except (InvalidChunkMetadata, AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Dropping malformed match from %s: %r (%s)", index_name, raw, e)
            continue
        out.append(CandidateMatch(key=key, index=index_name, distance=distance, metadata=metadata))
    return out


class IndexFanoutSearcher:
    """Runs one similarity query per index concurrently; a failing index is skipped."""

    def __init__(self, backend: VectorBackend):
        self.backend = backend

    async def _query_index(
        self, index_name: str, vector: Sequence[float], top_k: int
    ) -> List[CandidateMatch]:
        try:
            raw = await call_backend(self.backend.query, index_name, vector, top_k)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise IndexQueryFailed(index_name, e) from e
        return _to_candidates(index_name, raw)[:top_k]

    async def search(
        self,
        variant_text: str,
        vector: Sequence[float],
        index_names: Sequence[str],
        top_k: int,
    ) -> FanoutResult:
        """Query every index, flatten, sort by ascending distance and keep top_k."""
        outcomes = await asyncio.gather(
            *(self._query_index(name, vector, top_k) for name in index_names),
            return_exceptions=True,
        )

        result = FanoutResult()
        for name, outcome in zip(index_names, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, Exception):
                logger.error("Error querying %s for %r: %s", name, variant_text, outcome)
                result.failed_indices.append(name)
                continue
            result.searched_indices.append(name)
            result.candidates.extend(outcome)

        result.candidates.sort(key=lambda c: c.sort_distance)
        result.candidates = result.candidates[:top_k]
        logger.debug(
            "Variant %r: %s candidates from %s/%s indices",
            variant_text,
            len(result.candidates),
            len(result.searched_indices),
            len(index_names),
        )
        return result
