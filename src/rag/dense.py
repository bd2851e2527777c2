"""
Local embedding client using sentence-transformers.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import List, Sequence

from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)

LOCAL_EMBEDDING_MODEL = os.getenv("LOCAL_EMBEDDING_MODEL", "all-MiniLM-L6-v2")


class SentenceTransformerEmbedder:
    """EmbeddingClient backed by a local SentenceTransformer model."""

    def __init__(self, model_name: str = LOCAL_EMBEDDING_MODEL):
        self.model_name = model_name
        self.model = SentenceTransformer(model_name)
        logger.info("Loaded local embedding model %s", model_name)

    @property
    def dimension(self) -> int:
        return int(self.model.get_sentence_embedding_dimension())

    def encode(self, texts: Sequence[str]) -> List[List[float]]:
        emb = self.model.encode(
            list(texts),
            convert_to_numpy=True,
            normalize_embeddings=True,
        )
        return [row.tolist() for row in emb]

    async def embed(self, text: str) -> List[float]:
        """Encode one text in a worker thread so the event loop stays free."""
        vectors = await asyncio.to_thread(self.encode, [text])
        return vectors[0]
