"""
Query embedding with rate-limit courtesy delay and deterministic fallback vectors.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
import zlib
from dataclasses import dataclass
from typing import List, Optional, Protocol

import numpy as np

from .errors import ProviderUnavailable

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "1536"))
MAX_INPUT_CHARS = 8000


class EmbeddingClient(Protocol):
    """Anything that can turn text into a vector (network or local model)."""

    async def embed(self, text: str) -> List[float]:
        ...


@dataclass
class EmbeddingResult:
    """A query vector and whether it came from the fallback path."""

    vector: List[float]
    used_fallback: bool


def fallback_embedding(text: str, dimension: int = EMBEDDING_DIMENSION) -> List[float]:
    """Deterministic pseudo-embedding: sin(seed + i), seed = CRC-32 of the text."""
    seed = zlib.crc32(text.encode("utf-8"))
    return np.sin(seed + np.arange(dimension, dtype=np.float64)).tolist()


class EmbeddingProvider:
    """
    Embeds query text through an optional client.

    Without a client every call takes the fallback path. With a client, calls
    are serialized and spaced at least min_interval seconds apart; the client
    owns retry/backoff and raises ProviderUnavailable when it gives up.
    """

    def __init__(
        self,
        client: Optional[EmbeddingClient] = None,
        *,
        dimension: int = EMBEDDING_DIMENSION,
        max_input_chars: int = MAX_INPUT_CHARS,
        min_interval: float = 0.5,
    ):
        self.client = client
        self.dimension = dimension
        self.max_input_chars = max_input_chars
        self.min_interval = min_interval
        self._lock = asyncio.Lock()
        self._last_call: Optional[float] = None

    @property
    def has_client(self) -> bool:
        return self.client is not None

    def truncate(self, text: str) -> str:
        return text[: self.max_input_chars]

    async def embed(self, text: str) -> List[float]:
        return (await self.embed_with_status(text)).vector

    async def embed_with_status(self, text: str) -> EmbeddingResult:
        text = self.truncate(text)
        if self.client is None:
            logger.debug("No embedding client configured, using fallback embedding")
            return EmbeddingResult(fallback_embedding(text, self.dimension), used_fallback=True)

        async with self._lock:
            await self._throttle()
            try:
                vector = await self.client.embed(text)
            except asyncio.CancelledError:
                raise
            except ProviderUnavailable as e:
                logger.warning("Embedding provider unavailable, falling back to hash embedding: %s", e)
                return EmbeddingResult(fallback_embedding(text, self.dimension), used_fallback=True)
            except Exception as e:
                logger.error("Unexpected embedding error, falling back to hash embedding: %s", e)
                return EmbeddingResult(fallback_embedding(text, self.dimension), used_fallback=True)
            finally:
                self._last_call = time.monotonic()
        return EmbeddingResult(vector, used_fallback=False)

    async def _throttle(self) -> None:
        if self._last_call is None or self.min_interval <= 0:
            return
        wait = self.min_interval - (time.monotonic() - self._last_call)
        if wait > 0:
            await asyncio.sleep(wait)
